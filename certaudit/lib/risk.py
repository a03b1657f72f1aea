"""
Impersonation risk evaluation for certificate templates.

A template is risky when the enrollee supplies the subject of the issued
certificate and requests are issued without CA manager approval. A risky
template published by an enterprise CA yields one finding per CA, flagged as
impersonation capable when the template carries an EKU that allows logon.

Everything here operates on already fetched directory data and never touches
the directory.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from certaudit.lib.constants import (
    AUTHENTICATION_EKUS,
    CertificateNameFlag,
    EnrollmentFlag,
)
from certaudit.lib.logger import logging
from certaudit.lib.structs import CertificateTemplate, CertificationAuthority, Finding


def is_risky(subject_name_flag: Optional[int], enrollment_flag: Optional[int]) -> bool:
    """
    Check whether a template lets the enrollee supply the subject and auto-issues.

    Args:
        subject_name_flag: msPKI-Certificate-Name-Flag value, None when absent
        enrollment_flag: msPKI-Enrollment-Flag value, None when absent

    Returns:
        True if ENROLLEE_SUPPLIES_SUBJECT is set and PEND_ALL_REQUESTS is not
    """
    # Absent flags mean the feature is disabled
    subject_name_flag = subject_name_flag or 0
    enrollment_flag = enrollment_flag or 0

    enrollee_supplies_subject = bool(
        subject_name_flag & CertificateNameFlag.ENROLLEE_SUPPLIES_SUBJECT
    )
    requires_manager_approval = bool(
        enrollment_flag & EnrollmentFlag.PEND_ALL_REQUESTS
    )

    return enrollee_supplies_subject and not requires_manager_approval


def can_authenticate(extended_key_usage: Optional[Iterable[str]]) -> bool:
    """
    Check whether certificates with these EKUs can be used to log on.

    An empty or absent EKU set never matches.

    Args:
        extended_key_usage: EKU OIDs of the template

    Returns:
        True if any OID is Any Purpose, Smart Card Logon or Client Authentication
    """
    if not extended_key_usage:
        return False

    return not AUTHENTICATION_EKUS.isdisjoint(extended_key_usage)


def get_risky_templates(
    templates: Iterable[CertificateTemplate],
) -> List[CertificateTemplate]:
    """
    Filter templates down to the risky ones, preserving input order.
    """
    return [
        template
        for template in templates
        if is_risky(template.subject_name_flag, template.enrollment_flag)
    ]


def cross_reference(
    risky_templates: Sequence[CertificateTemplate],
    cas: Iterable[CertificationAuthority],
) -> List[Tuple[CertificateTemplate, CertificationAuthority]]:
    """
    Pair each CA with the risky templates it publishes.

    Pairs are emitted in CA order, then template order.

    Args:
        risky_templates: Templates that already satisfy the risk predicate
        cas: Enterprise CAs with their published template names

    Returns:
        (template, CA) pairs where the CA publishes the template
    """
    pairs = []

    for ca in cas:
        for template in risky_templates:
            if ca.publishes(template.name):
                pairs.append((template, ca))

    return pairs


def evaluate(
    templates: Iterable[CertificateTemplate],
    cas: Iterable[CertificationAuthority],
) -> Tuple[List[Finding], bool]:
    """
    Evaluate templates and CAs for impersonation risk.

    Args:
        templates: All certificate templates of the forest
        cas: All enterprise CAs of the forest

    Returns:
        Tuple of (findings, has_risk). has_risk is False when no published
        template is risky.
    """
    risky_templates = get_risky_templates(templates)
    logging.info(
        f"Found {len(risky_templates)} template{'' if len(risky_templates) == 1 else 's'} "
        "allowing enrollee supplied subject without manager approval"
    )

    findings = [
        Finding(
            template_name=template.name,
            ca_host_name=ca.host_name,
            ca_name=ca.name,
            impersonation_capable=can_authenticate(template.extended_key_usage),
        )
        for template, ca in cross_reference(risky_templates, cas)
    ]

    return findings, len(findings) > 0
