import logging

import pytest

from certaudit.lib import logger
from certaudit.lib.ldap import LDAPEntry


@pytest.fixture(autouse=True)
def init_logger():
    # Propagate so caplog sees the records
    logger.init(level=logging.DEBUG, propagate=True)
    logger.set_verbose(False)
    yield
    logger.set_verbose(False)


def make_entry(attributes=None, raw_attributes=None):
    """Build an entry shaped like an ldap3 paged search result."""
    attributes = dict(attributes or {})
    if raw_attributes is None:
        raw_attributes = {}
        for key, value in attributes.items():
            values = value if isinstance(value, list) else [value]
            raw_attributes[key] = [
                v.encode() if isinstance(v, str) else str(v).encode() for v in values
            ]

    return LDAPEntry(
        dn="CN=Entry,CN=Public Key Services,CN=Services,CN=Configuration,DC=corp,DC=local",
        type="searchResEntry",
        attributes=attributes,
        raw_attributes=raw_attributes,
    )


def make_template_entry(
    name="T1", name_flag=1, enrollment_flag=0, ekus=("1.3.6.1.5.5.7.3.2",)
):
    attributes = {"cn": name, "name": name}
    if name_flag is not None:
        attributes["msPKI-Certificate-Name-Flag"] = name_flag
    if enrollment_flag is not None:
        attributes["msPKI-Enrollment-Flag"] = enrollment_flag
    if ekus is not None:
        attributes["pKIExtendedKeyUsage"] = list(ekus)
    return make_entry(attributes)


def make_ca_entry(name="CA1", host_name="ca1.corp.local", templates=("T1",)):
    attributes = {"cn": name, "name": name}
    if host_name is not None:
        attributes["dNSHostName"] = host_name
    if templates is not None:
        attributes["certificateTemplates"] = list(templates)
    return make_entry(attributes)
