"""
Certificate template impersonation check for Certaudit.

This module reads certificate templates and enterprise CAs from the PKI
configuration container over LDAP, evaluates which published templates let an
enrollee request a certificate for an arbitrary identity without approval, and
reports one finding per (template, CA) pair.
"""

import argparse
import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from certaudit.lib.constants import (
    ATTR_CERTIFICATE_NAME_FLAG,
    ATTR_CERTIFICATE_TEMPLATES,
    ATTR_DNS_HOST_NAME,
    ATTR_ENROLLMENT_FLAG,
    ATTR_EXTENDED_KEY_USAGE,
    ATTR_NAME,
    ATTR_TEMPLATE_NAME,
    CERTIFICATE_TEMPLATES_CONTAINER,
    ENROLLMENT_SERVICES_CONTAINER,
)
from certaudit.lib.directory import cas_from_entries, templates_from_entries
from certaudit.lib.files import try_to_save_file
from certaudit.lib.formatting import print_table, yes_no
from certaudit.lib.ldap import LDAPConnection, LDAPEntry
from certaudit.lib.logger import logging
from certaudit.lib.risk import evaluate
from certaudit.lib.structs import CertificateTemplate, CertificationAuthority, Finding
from certaudit.lib.target import Target

TABLE_COLUMNS = [
    "VulnerableTemplateName",
    "CAHostName",
    "CAName",
    "IsVulnerableToADUserImpersonation",
]

NO_RISK_MESSAGE = "No vulnerable certificate templates found"


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


class Find:
    def __init__(
        self,
        target: Optional[Target] = None,
        json: bool = False,
        csv: bool = False,
        output: Optional[str] = None,
        connection: Optional[LDAPConnection] = None,
        **kwargs,  # type: ignore
    ):
        self.target = target
        self.json = json
        self.csv = csv
        self.output = output
        self.kwargs = kwargs

        self._connection = connection

    # =========================================================================
    # Connection Handling
    # =========================================================================

    @property
    def connection(self) -> LDAPConnection:
        """
        Get or create an LDAP connection.

        Raises:
            DirectoryUnavailable: If the connection cannot be established
        """
        if self._connection is not None:
            return self._connection

        if self.target is None:
            raise ValueError("No target to connect to")

        self._connection = LDAPConnection(self.target)
        self._connection.connect()

        return self._connection

    # =========================================================================
    # Directory Queries
    # =========================================================================

    def get_certificate_templates(self) -> List[LDAPEntry]:
        """
        Query LDAP for certificate templates.
        """
        return self.connection.search(
            "(objectclass=pKICertificateTemplate)",
            search_base=f"{CERTIFICATE_TEMPLATES_CONTAINER},{self.connection.configuration_path}",
            attributes=[
                ATTR_TEMPLATE_NAME,
                ATTR_NAME,
                ATTR_CERTIFICATE_NAME_FLAG,
                ATTR_ENROLLMENT_FLAG,
                ATTR_EXTENDED_KEY_USAGE,
            ],
        )

    def get_certificate_authorities(self) -> List[LDAPEntry]:
        """
        Query LDAP for enterprise certificate authorities.
        """
        return self.connection.search(
            "(&(objectClass=pKIEnrollmentService))",
            search_base=f"{ENROLLMENT_SERVICES_CONTAINER},{self.connection.configuration_path}",
            attributes=[
                ATTR_TEMPLATE_NAME,
                ATTR_NAME,
                ATTR_DNS_HOST_NAME,
                ATTR_CERTIFICATE_TEMPLATES,
            ],
        )

    def list_certificate_templates(self) -> List[CertificateTemplate]:
        return templates_from_entries(self.get_certificate_templates())

    def list_enterprise_cas(self) -> List[CertificationAuthority]:
        return cas_from_entries(self.get_certificate_authorities())

    # =========================================================================
    # Main Discovery Method
    # =========================================================================

    def find(self) -> Tuple[List[Finding], bool]:
        """
        Read templates and CAs, evaluate them and output the findings.

        Both lists are fully read before evaluation starts.

        Returns:
            Tuple of (findings, has_risk)

        Raises:
            DirectoryUnavailable: If the directory cannot be read
        """
        try:
            logging.info("Finding certificate templates")
            templates = self.list_certificate_templates()
            logging.info(
                f"Found {_plural(len(templates), 'certificate template', 'certificate templates')}"
            )

            logging.info("Finding certificate authorities")
            cas = self.list_enterprise_cas()
            logging.info(
                f"Found {_plural(len(cas), 'certificate authority', 'certificate authorities')}"
            )
        finally:
            if self._connection is not None:
                self._connection.close()

        findings, has_risk = evaluate(templates, cas)

        prefix = (
            datetime.now().strftime("%Y%m%d%H%M%S") if not self.output else self.output
        )
        self._save_output(findings, has_risk, prefix)

        return findings, has_risk

    # =========================================================================
    # Output Methods
    # =========================================================================

    def _save_output(
        self, findings: List[Finding], has_risk: bool, prefix: str
    ) -> None:
        """
        Print the findings table and write the requested result files.

        Args:
            findings: Findings to output
            has_risk: Whether any risk was found
            prefix: Output file prefix
        """
        if has_risk:
            logging.warning(
                f"Found {_plural(len(findings), 'vulnerable template publication', 'vulnerable template publications')}"
            )
            print_table(TABLE_COLUMNS, self.get_table_rows(findings))
        else:
            logging.info(NO_RISK_MESSAGE)

        if self.json:
            output_path = f"{prefix}_Certaudit.json"
            logging.info(f"Saving JSON output to {output_path!r}")

            output_path = try_to_save_file(
                json.dumps(self.get_output_for_json(findings, has_risk), indent=2),
                output_path,
            )
            logging.info(f"Wrote JSON output to {output_path!r}")

        if self.csv:
            output_path = f"{prefix}_Certaudit.csv"
            logging.info(f"Saving CSV output to {output_path!r}")

            output_path = try_to_save_file(self.get_output_for_csv(findings), output_path)
            logging.info(f"Wrote CSV output to {output_path!r}")

    def get_table_rows(self, findings: List[Finding]) -> List[List[Optional[str]]]:
        return [
            [
                finding.template_name,
                finding.ca_host_name,
                finding.ca_name,
                yes_no(finding.impersonation_capable),
            ]
            for finding in findings
        ]

    def get_output_for_json(
        self, findings: List[Finding], has_risk: bool
    ) -> Dict[str, Any]:
        """
        Generate structured output for JSON.

        Returns:
            Dictionary keyed by the table column names
        """
        return {
            "Vulnerable": has_risk,
            "Findings": [
                dict(zip(TABLE_COLUMNS, row)) for row in self.get_table_rows(findings)
            ],
        }

    def get_output_for_csv(self, findings: List[Finding]) -> str:
        """
        Convert findings to CSV with the table columns.

        Returns:
            String containing CSV-formatted data
        """
        csvfile = io.StringIO(newline="")
        writer = csv.writer(csvfile, delimiter=";", quoting=csv.QUOTE_ALL)

        writer.writerow(TABLE_COLUMNS)
        writer.writerows(
            ["" if value is None else value for value in row]
            for row in self.get_table_rows(findings)
        )

        return csvfile.getvalue()


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the 'find' command.

    Args:
        options: Command-line arguments
    """
    target = Target.from_options(options)
    options.__delattr__("target")

    find = Find(target=target, **vars(options))
    _ = find.find()
