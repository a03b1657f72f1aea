"""
Constants module for Certaudit.

This module defines:
- Directory locations of the PKI objects inside the configuration naming context
- Certificate template flags consumed by the risk evaluation
- Extended key usage OIDs, their names and the fixed set allowing logon
"""

from certaudit.lib.structs import IntFlag

# =========================================================================
# Directory Locations
# =========================================================================

PUBLIC_KEY_SERVICES = "CN=Public Key Services,CN=Services"
CERTIFICATE_TEMPLATES_CONTAINER = f"CN=Certificate Templates,{PUBLIC_KEY_SERVICES}"
ENROLLMENT_SERVICES_CONTAINER = f"CN=Enrollment Services,{PUBLIC_KEY_SERVICES}"

# Registry key holding the local certificate template cache
TEMPLATE_CACHE_KEY = (
    "HKEY_USERS\\.DEFAULT\\Software\\Microsoft\\Cryptography\\CertificateTemplateCache\\"
)

# =========================================================================
# Template Attributes
# =========================================================================

ATTR_TEMPLATE_NAME = "cn"
ATTR_NAME = "name"
ATTR_CERTIFICATE_NAME_FLAG = "msPKI-Certificate-Name-Flag"
ATTR_ENROLLMENT_FLAG = "msPKI-Enrollment-Flag"
ATTR_EXTENDED_KEY_USAGE = "pKIExtendedKeyUsage"

# =========================================================================
# CA Attributes
# =========================================================================

ATTR_DNS_HOST_NAME = "dNSHostName"
ATTR_CERTIFICATE_TEMPLATES = "certificateTemplates"

# =========================================================================
# PKI Certificate Flags
# =========================================================================


# Enrollment flags
# Source: https://docs.microsoft.com/en-us/openspecs/windows_protocols/ms-crtd/ec71fd43-61c2-407b-83c9-b52272dec8a1
class EnrollmentFlag(IntFlag):
    """
    Flags controlling certificate enrollment behavior.

    Reference: MS-CRTD 2.26 msPKI-Enrollment-Flag Attribute
    """

    NONE = 0x00000000

    INCLUDE_SYMMETRIC_ALGORITHMS = 0x00000001
    PEND_ALL_REQUESTS = 0x00000002  # CA manager approval required
    PUBLISH_TO_KRA_CONTAINER = 0x00000004
    PUBLISH_TO_DS = 0x00000008
    AUTO_ENROLLMENT_CHECK_USER_DS_CERTIFICATE = 0x00000010
    AUTO_ENROLLMENT = 0x00000020
    PREVIOUS_APPROVAL_VALIDATE_REENROLLMENT = 0x00000040
    USER_INTERACTION_REQUIRED = 0x00000100
    ADD_TEMPLATE_NAME = 0x00000200
    REMOVE_INVALID_CERTIFICATE_FROM_PERSONAL_STORE = 0x00000400
    ALLOW_ENROLL_ON_BEHALF_OF = 0x00000800
    ADD_OCSP_NOCHECK = 0x00001000
    ENABLE_KEY_REUSE_ON_NT_TOKEN_KEYSET_STORAGE_FULL = 0x00002000
    NOREVOCATIONINFOINISSUEDCERTS = 0x00004000
    INCLUDE_BASIC_CONSTRAINTS_FOR_EE_CERTS = 0x00008000
    ALLOW_PREVIOUS_APPROVAL_KEYBASEDRENEWAL_VALIDATE_REENROLLMENT = 0x00010000
    ISSUANCE_POLICIES_FROM_REQUEST = 0x00020000
    SKIP_AUTO_RENEWAL = 0x00040000
    NO_SECURITY_EXTENSION = 0x00080000


# Certificate name flags
# Source: https://docs.microsoft.com/en-us/openspecs/windows_protocols/ms-crtd/1192823c-d839-4bc3-9b6b-fa8c53507ae1
class CertificateNameFlag(IntFlag):
    """
    Flags controlling how the subject of an issued certificate is built.

    Reference: MS-CRTD 2.28 msPKI-Certificate-Name-Flag Attribute
    """

    NONE = 0x00000000

    ENROLLEE_SUPPLIES_SUBJECT = 0x00000001  # Requester chooses the subject
    ADD_EMAIL = 0x00000002
    ADD_OBJ_GUID = 0x00000004
    OLD_CERT_SUPPLIES_SUBJECT_AND_ALT_NAME = 0x00000008
    ADD_DIRECTORY_PATH = 0x00000100
    ENROLLEE_SUPPLIES_SUBJECT_ALT_NAME = 0x00010000
    SUBJECT_ALT_REQUIRE_DOMAIN_DNS = 0x00400000
    SUBJECT_ALT_REQUIRE_SPN = 0x00800000
    SUBJECT_ALT_REQUIRE_DIRECTORY_GUID = 0x01000000
    SUBJECT_ALT_REQUIRE_UPN = 0x02000000
    SUBJECT_ALT_REQUIRE_EMAIL = 0x04000000
    SUBJECT_ALT_REQUIRE_DNS = 0x08000000
    SUBJECT_REQUIRE_DNS_AS_CN = 0x10000000
    SUBJECT_REQUIRE_EMAIL = 0x20000000
    SUBJECT_REQUIRE_COMMON_NAME = 0x40000000
    SUBJECT_REQUIRE_DIRECTORY_PATH = 0x80000000


# =========================================================================
# Extended Key Usage
# =========================================================================

OID_ANY_PURPOSE = "2.5.29.37.0"
OID_SMART_CARD_LOGON = "1.3.6.1.4.1.311.20.2.2"
OID_CLIENT_AUTHENTICATION = "1.3.6.1.5.5.7.3.2"

# EKUs that let an issued certificate be used to log on to the domain
AUTHENTICATION_EKUS = frozenset(
    {
        OID_ANY_PURPOSE,
        OID_SMART_CARD_LOGON,
        OID_CLIENT_AUTHENTICATION,
    }
)

# OID mappings to human-readable names
# Source: https://www.pkisolutions.com/object-identifiers-oid-in-pki/
OID_TO_STR_MAP = {
    OID_ANY_PURPOSE: "Any Purpose",
    OID_SMART_CARD_LOGON: "Smart Card Logon",
    OID_CLIENT_AUTHENTICATION: "Client Authentication",
    "1.3.6.1.4.1.311.20.2.1": "Certificate Request Agent",
    "1.3.6.1.4.1.311.10.3.4": "Encrypting File System",
    "1.3.6.1.4.1.311.10.3.4.1": "File Recovery",
    "1.3.6.1.4.1.311.10.3.12": "Document Signing",
    "1.3.6.1.4.1.311.21.5": "Private Key Archival",
    "1.3.6.1.4.1.311.21.6": "Key Recovery Agent",
    "1.3.6.1.4.1.311.21.19": "Directory Service Email Replication",
    "1.3.6.1.5.5.7.3.1": "Server Authentication",
    "1.3.6.1.5.5.7.3.3": "Code Signing",
    "1.3.6.1.5.5.7.3.4": "Secure Email",
    "1.3.6.1.5.5.7.3.8": "Time Stamping",
    "1.3.6.1.5.5.7.3.9": "OCSP Signing",
    "1.3.6.1.5.2.3.4": "PKINIT Client Authentication",
    "1.3.6.1.5.2.3.5": "KDC Authentication",
}
