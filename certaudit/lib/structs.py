"""
Data structures shared across Certaudit.

This module defines:
- IntFlag: an enum.IntFlag with readable string representations
- CertificateTemplate, CertificationAuthority: the typed directory objects
  consumed by the risk evaluation
- Finding: one vulnerable template as published by one CA
"""

import enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from certaudit.lib.formatting import to_pascal_case


class IntFlag(enum.IntFlag):
    """
    Enhanced IntFlag with smart string representation.
    """

    def to_list(self) -> List["IntFlag"]:
        """
        Decompose flag into list of individual flags.

        Returns:
            List of individual flag members
        """
        if not self._value_:
            return []

        return [
            flag for flag in self.__class__ if flag.value and flag.value & self._value_
        ]

    def to_str_list(self) -> List[str]:
        """
        Return list of flag names.

        Returns:
            List of flag names
        """
        return [
            to_pascal_case(flag.name)
            for flag in self.to_list()
            if flag.name is not None
        ]

    def __str__(self) -> str:
        if self.name is not None and self.name in self.__class__.__members__:
            return to_pascal_case(self.name)

        if not self._value_:
            return ""

        flags = self.to_list()

        # If no decomposition was possible, return the raw value
        if not flags:
            return repr(self._value_)

        return ", ".join(
            to_pascal_case(flag.name) for flag in flags if flag.name is not None
        )

    def __repr__(self) -> str:
        return str(self)


class CertificateTemplate:
    """
    A certificate template as read from the directory.

    Only the attributes used by the risk evaluation are kept. Instances are
    input data for one evaluation run and are never modified by it.
    """

    def __init__(
        self,
        name: str,
        subject_name_flag: int = 0,
        enrollment_flag: int = 0,
        extended_key_usage: Iterable[str] = (),
    ) -> None:
        """
        Args:
            name: Template common name (cn)
            subject_name_flag: msPKI-Certificate-Name-Flag bitmask
            enrollment_flag: msPKI-Enrollment-Flag bitmask
            extended_key_usage: EKU OIDs of issued certificates
        """
        self.name: str = name
        self.subject_name_flag: int = subject_name_flag
        self.enrollment_flag: int = enrollment_flag
        self.extended_key_usage: FrozenSet[str] = frozenset(extended_key_usage)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CertificateTemplate):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash(
            (
                self.name,
                self.subject_name_flag,
                self.enrollment_flag,
                self.extended_key_usage,
            )
        )

    def __repr__(self) -> str:
        return f"<CertificateTemplate ({self.__dict__!r})>"


class CertificationAuthority:
    """
    An enterprise CA (pKIEnrollmentService object) and the templates it publishes.
    """

    def __init__(
        self,
        name: str,
        host_name: Optional[str] = None,
        published_templates: Iterable[str] = (),
    ) -> None:
        """
        Args:
            name: CA name
            host_name: DNS host name of the CA server, if known
            published_templates: Names of the templates offered for enrollment
        """
        self.name: str = name
        self.host_name: Optional[str] = host_name
        self.published_templates: FrozenSet[str] = frozenset(published_templates)

    def publishes(self, template_name: str) -> bool:
        return template_name in self.published_templates

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CertificationAuthority):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash((self.name, self.host_name, self.published_templates))

    def __repr__(self) -> str:
        return f"<CertificationAuthority ({self.__dict__!r})>"


class Finding:
    """
    A template that lets the enrollee choose the subject and is issued without
    approval, paired with a CA that publishes it.
    """

    def __init__(
        self,
        template_name: str,
        ca_host_name: Optional[str],
        ca_name: str,
        impersonation_capable: bool,
    ) -> None:
        self.template_name: str = template_name
        self.ca_host_name: Optional[str] = ca_host_name
        self.ca_name: str = ca_name
        self.impersonation_capable: bool = impersonation_capable

    def to_tuple(self) -> Tuple[str, Optional[str], str, bool]:
        return (
            self.template_name,
            self.ca_host_name,
            self.ca_name,
            self.impersonation_capable,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_name": self.template_name,
            "ca_host_name": self.ca_host_name,
            "ca_name": self.ca_name,
            "impersonation_capable": self.impersonation_capable,
        }

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Finding):
            return NotImplemented
        return self.to_tuple() == other.to_tuple()

    def __hash__(self) -> int:
        return hash(self.to_tuple())

    def __repr__(self) -> str:
        return f"<Finding ({self.to_dict()!r})>"
