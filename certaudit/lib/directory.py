"""
Conversion of directory entries into typed PKI objects.

Directory readers (LDAP or offline registry exports) hand over attribute bags.
This module turns them into CertificateTemplate and CertificationAuthority
objects carrying only what the risk evaluation uses, and applies the policy
for missing or malformed attributes:

- absent flag attributes are read as 0
- absent OID or template name lists are read as empty sets
- present but malformed values are logged as warnings and degraded the same way
"""

from typing import Any, FrozenSet, Iterable, List, Optional

from certaudit.lib.constants import (
    ATTR_CERTIFICATE_NAME_FLAG,
    ATTR_CERTIFICATE_TEMPLATES,
    ATTR_DNS_HOST_NAME,
    ATTR_ENROLLMENT_FLAG,
    ATTR_EXTENDED_KEY_USAGE,
    ATTR_NAME,
    ATTR_TEMPLATE_NAME,
    OID_TO_STR_MAP,
    CertificateNameFlag,
    EnrollmentFlag,
)
from certaudit.lib.errors import MalformedAttribute
from certaudit.lib.ldap import LDAPEntry
from certaudit.lib.logger import logging
from certaudit.lib.structs import CertificateTemplate, CertificationAuthority

# Flags are unsigned 32-bit values, but directories may hand them out signed
FLAG_MASK = 0xFFFFFFFF


def parse_flag(attribute: str, value: Any) -> int:
    """
    Strictly interpret a flag attribute value as an unsigned 32-bit integer.

    Args:
        attribute: Attribute name, used for error reporting
        value: Value as returned by the directory reader

    Returns:
        The flag value

    Raises:
        MalformedAttribute: If the value is not a single integer
    """
    if isinstance(value, (list, tuple)):
        if len(value) != 1:
            raise MalformedAttribute(attribute, value)
        value = value[0]

    if isinstance(value, bytes):
        try:
            value = value.decode()
        except UnicodeDecodeError:
            raise MalformedAttribute(attribute, value)

    if isinstance(value, bool):
        raise MalformedAttribute(attribute, value)

    try:
        flag = int(value)
    except (TypeError, ValueError):
        raise MalformedAttribute(attribute, value)

    return flag & FLAG_MASK


def parse_string_set(attribute: str, value: Any) -> FrozenSet[str]:
    """
    Strictly interpret a single- or multi-valued string attribute as a set.

    Byte strings are decoded as UTF-8. Blank values are dropped.

    Raises:
        MalformedAttribute: If a value is neither text nor decodable bytes
    """
    if not isinstance(value, (list, tuple, set, frozenset)):
        value = [value]

    result = set()
    for item in value:
        if isinstance(item, bytes):
            try:
                item = item.decode()
            except UnicodeDecodeError:
                raise MalformedAttribute(attribute, item)

        if not isinstance(item, str):
            raise MalformedAttribute(attribute, item)

        item = item.strip()
        if item:
            result.add(item)

    return frozenset(result)


def get_flag(entry: LDAPEntry, attribute: str) -> int:
    """
    Read a flag attribute, degrading absent or malformed values to 0.
    """
    value = entry.get(attribute)
    if value is None:
        logging.debug(f"Attribute {attribute!r} is not set. Treating it as 0")
        return 0

    try:
        return parse_flag(attribute, value)
    except MalformedAttribute as e:
        logging.warning(f"{e}. Treating it as 0")
        return 0


def get_string_set(entry: LDAPEntry, attribute: str) -> FrozenSet[str]:
    """
    Read a multi-valued string attribute, degrading absent or malformed values
    to an empty set.
    """
    value = entry.get_raw(attribute)
    if value is None:
        return frozenset()

    try:
        return parse_string_set(attribute, value)
    except MalformedAttribute as e:
        logging.warning(f"{e}. Treating it as empty")
        return frozenset()


def get_string(entry: LDAPEntry, *attributes: str) -> Optional[str]:
    """
    Return the first non-empty string value among the given attributes.
    """
    for attribute in attributes:
        value = entry.get(attribute)

        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if isinstance(value, bytes):
            value = value.decode(errors="replace")

        if value is not None and str(value).strip():
            return str(value).strip()

    return None


def template_from_entry(entry: LDAPEntry) -> Optional[CertificateTemplate]:
    """
    Build a CertificateTemplate from a directory entry.

    Returns:
        The template, or None if the entry carries no name
    """
    name = get_string(entry, ATTR_TEMPLATE_NAME, ATTR_NAME)
    if name is None:
        logging.warning("Skipping certificate template without a name")
        return None

    template = CertificateTemplate(
        name=name,
        subject_name_flag=get_flag(entry, ATTR_CERTIFICATE_NAME_FLAG),
        enrollment_flag=get_flag(entry, ATTR_ENROLLMENT_FLAG),
        extended_key_usage=get_string_set(entry, ATTR_EXTENDED_KEY_USAGE),
    )

    logging.debug(
        f"Template {name!r}: "
        f"certificate name flag [{CertificateNameFlag(template.subject_name_flag)}], "
        f"enrollment flag [{EnrollmentFlag(template.enrollment_flag)}], "
        f"extended key usage {sorted(OID_TO_STR_MAP.get(e, e) for e in template.extended_key_usage)}"
    )

    return template


def ca_from_entry(entry: LDAPEntry) -> Optional[CertificationAuthority]:
    """
    Build a CertificationAuthority from a pKIEnrollmentService entry.

    Returns:
        The CA, or None if the entry carries no name
    """
    name = get_string(entry, ATTR_NAME, ATTR_TEMPLATE_NAME)
    if name is None:
        logging.warning("Skipping certificate authority without a name")
        return None

    ca = CertificationAuthority(
        name=name,
        host_name=get_string(entry, ATTR_DNS_HOST_NAME),
        published_templates=get_string_set(entry, ATTR_CERTIFICATE_TEMPLATES),
    )

    logging.debug(
        f"CA {name!r} ({ca.host_name!r}) publishes {len(ca.published_templates)} "
        f"template{'s' if len(ca.published_templates) != 1 else ''}"
    )

    return ca


def templates_from_entries(entries: Iterable[LDAPEntry]) -> List[CertificateTemplate]:
    templates = []
    for entry in entries:
        template = template_from_entry(entry)
        if template is not None:
            templates.append(template)
    return templates


def cas_from_entries(entries: Iterable[LDAPEntry]) -> List[CertificationAuthority]:
    cas = []
    for entry in entries:
        ca = ca_from_entry(entry)
        if ca is not None:
            cas.append(ca)
    return cas
