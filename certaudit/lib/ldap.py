"""
LDAP connection and query functionality for Certaudit.

This module provides:
- LDAPEntry: Dictionary-like class for LDAP objects with attribute access methods
- LDAPConnection: Connects to a domain controller and runs paged searches

Authentication is NTLM by default, SIMPLE bind on request, or Kerberos through
a GSS-SPNEGO SASL bind. Every connection, bind or search failure is reported
as DirectoryUnavailable.
"""

import ssl
from typing import Any, Dict, List, Optional, Union

import ldap3
from impacket.krb5.kerberosv5 import KerberosError
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import (
    RESULT_INVALID_CREDENTIALS,
    RESULT_STRONGER_AUTH_REQUIRED,
    RESULT_SUCCESS,
)
from ldap3.operation.bind import bind_operation

from certaudit.lib.errors import DirectoryUnavailable
from certaudit.lib.kerberos import get_kerberos_type1
from certaudit.lib.logger import logging
from certaudit.lib.target import Target

PAGE_SIZE = 200


class LDAPEntry(Dict[str, Any]):
    """
    Dictionary-like class representing an LDAP entry with helper methods.

    Entries keep the layout returned by ldap3 searches: decoded values under
    "attributes" and undecoded byte values under "raw_attributes".
    """

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get an attribute value from the LDAP entry.

        Args:
            key: Attribute name to retrieve
            default: Value to return if attribute is missing or empty (default: None)

        Returns:
            Attribute value if present and not empty, otherwise the default value
        """
        if key not in self.__getitem__("attributes").keys():
            return default

        item = self.__getitem__("attributes").__getitem__(key)

        # Return default for empty lists
        if isinstance(item, list) and len(item) == 0:
            return default

        return item

    def set(self, key: str, value: Any) -> None:
        return self.__getitem__("attributes").__setitem__(key, value)

    def get_raw(self, key: str) -> Any:
        """
        Get the raw (undecoded) attribute value from the LDAP entry.

        Returns:
            Raw attribute value or None if not present
        """
        if "raw_attributes" not in self:
            return None

        if key not in self.__getitem__("raw_attributes").keys():
            return None

        item = self.__getitem__("raw_attributes").__getitem__(key)

        if isinstance(item, list) and len(item) == 0:
            return None

        return item


class LDAPConnection:
    """
    Read-only connection to Active Directory via LDAP/LDAPS.
    """

    def __init__(self, target: Target) -> None:
        """
        Args:
            target: Target object containing connection details
        """
        self.target = target
        self.use_ssl = target.ldap_scheme == "ldaps"

        if self.use_ssl:
            self.port = int(target.ldap_port) if target.ldap_port is not None else 636
        else:
            self.port = int(target.ldap_port) if target.ldap_port is not None else 389

        self.default_path: Optional[str] = None
        self.configuration_path: Optional[str] = None
        self.ldap_server: Optional[ldap3.Server] = None
        self.ldap_conn: Optional[ldap3.Connection] = None
        self.domain: Optional[str] = None

    def connect(self) -> None:
        """
        Connect and bind to the LDAP server, then read the naming contexts.

        Raises:
            DirectoryUnavailable: If the server cannot be reached or bound
        """
        if self.target.target_ip is None:
            raise DirectoryUnavailable("Target IP is not set")

        try:
            self._connect()
        except (LDAPException, KerberosError, OSError) as e:
            raise DirectoryUnavailable(
                f"Failed to connect to LDAP server {self.target.target_ip!r}: {e}"
            ) from e

    def close(self) -> None:
        """
        Unbind from the LDAP server if a connection was established.
        """
        if self.ldap_conn is None:
            return

        try:
            _ = self.ldap_conn.unbind()
        except LDAPException as e:
            logging.debug(f"Failed to unbind from LDAP server: {e}")

        self.ldap_conn = None

    def _connect(self) -> None:
        user = f"{self.target.domain}\\{self.target.username}"
        user_upn = f"{self.target.username}@{self.target.domain}"

        if self.use_ssl:
            tls = ldap3.Tls(
                validate=ssl.CERT_NONE,
                version=ssl.PROTOCOL_TLS_CLIENT,
                ciphers="ALL:@SECLEVEL=0",
                ssl_options=[ssl.OP_ALL],
            )
            ldap_server = ldap3.Server(
                self.target.target_ip,
                use_ssl=True,
                port=self.port,
                get_info=ldap3.ALL,
                tls=tls,
                connect_timeout=self.target.timeout,
            )
        else:
            ldap_server = ldap3.Server(
                self.target.target_ip,
                use_ssl=False,
                port=self.port,
                get_info=ldap3.ALL,
                connect_timeout=self.target.timeout,
            )

        if self.target.do_kerberos:
            logging.debug("Authenticating to LDAP server using Kerberos authentication")

            ldap_conn = ldap3.Connection(
                ldap_server,
                receive_timeout=self.target.timeout * 10,
            )
            self._kerberos_login(ldap_conn)
        else:
            auth_method = "SIMPLE" if self.target.do_simple else "NTLM"
            logging.debug(
                f"Authenticating to LDAP server using {auth_method} authentication"
            )

            if self.target.hashes is not None:
                ldap_pass = f"{self.target.lmhash}:{self.target.nthash}"
            else:
                ldap_pass = self.target.password

            ldap_conn = ldap3.Connection(
                ldap_server,
                user=user_upn if self.target.do_simple else user,
                password=ldap_pass,
                authentication=ldap3.SIMPLE if self.target.do_simple else ldap3.NTLM,
                auto_referrals=False,
                receive_timeout=self.target.timeout * 10,
            )

        if not ldap_conn.bound:
            bind_result = ldap_conn.bind()
            if not bind_result:
                self._check_ldap_result(ldap_conn.result)

        if ldap_server.schema is None:
            ldap_server.get_info_from_server(ldap_conn)

            if ldap_conn.result["result"] != RESULT_SUCCESS:
                if ldap_conn.result["message"].split(":")[0] == "000004DC":
                    raise DirectoryUnavailable(
                        "Failed to bind to LDAP. This is most likely due to an invalid username"
                    )

            if ldap_server.schema is None:
                raise DirectoryUnavailable("Failed to get LDAP schema")

        logging.debug(f"Bound to {ldap_server}")

        self.ldap_conn = ldap_conn
        self.ldap_server = ldap_server

        try:
            self.default_path = self.ldap_server.info.other["defaultNamingContext"][0]
            self.configuration_path = self.ldap_server.info.other[
                "configurationNamingContext"
            ][0]
        except (KeyError, IndexError, TypeError):
            raise DirectoryUnavailable(
                "Failed to read the naming contexts from the LDAP root DSE"
            )

        logging.debug(f"Default path: {self.default_path}")
        logging.debug(f"Configuration path: {self.configuration_path}")

        service_name = self.ldap_server.info.other.get("ldapServiceName")
        if service_name:
            self.domain = service_name[0].split("@")[-1]

    def _kerberos_login(self, connection: ldap3.Connection) -> None:
        """
        Perform Kerberos authentication through a GSS-SPNEGO SASL bind.

        Raises:
            DirectoryUnavailable: If the bind is refused
        """
        if connection.closed:
            connection.open(read_server_info=True)

        blob = get_kerberos_type1(
            self.target,
            target_name=self.target.remote_name or "",
            service="ldap",
        )

        request = bind_operation(
            connection.version,
            ldap3.SASL,
            self.target.username,
            None,
            "GSS-SPNEGO",
            blob,
        )

        connection.sasl_in_progress = True
        response = connection.post_send_single_response(
            connection.send("bindRequest", request, None)
        )
        connection.sasl_in_progress = False

        result = response[0]

        if result["result"] != RESULT_SUCCESS:
            logging.error(f"LDAP Kerberos authentication failed: {result}")
        else:
            logging.debug("LDAP Kerberos authentication successful")

        self._check_ldap_result(result)

        connection.bound = True

    def _check_ldap_result(self, result: Dict[str, Any]) -> None:
        """
        Translate an unsuccessful bind result into DirectoryUnavailable.

        Args:
            result: Result dictionary from the LDAP bind operation
        """
        if result["result"] == RESULT_SUCCESS:
            return

        message = result.get("message") or ""
        code = message.split(":")[0]

        if result["result"] == RESULT_INVALID_CREDENTIALS and code == "80090346":
            raise DirectoryUnavailable(
                "LDAP authentication refused because channel binding policy was not satisfied. "
                "Try '-ldap-scheme ldap' or '-ldap-simple-auth'"
            )

        if result["result"] == RESULT_STRONGER_AUTH_REQUIRED:
            raise DirectoryUnavailable(
                "LDAP authentication refused because LDAP signing is required. "
                "Try '-ldap-scheme ldaps'"
            )

        if result["result"] == RESULT_INVALID_CREDENTIALS:
            raise DirectoryUnavailable("Failed to authenticate to LDAP. Invalid credentials")

        raise DirectoryUnavailable(
            f"Failed to authenticate to LDAP: ({result.get('description')}) {message}"
        )

    def search(
        self,
        search_filter: str,
        attributes: Union[str, List[str]] = ldap3.ALL_ATTRIBUTES,
        search_base: Optional[str] = None,
        **kwargs: Any,
    ) -> List[LDAPEntry]:
        """
        Run a paged search and return all matching entries.

        Args:
            search_filter: LDAP search filter string
            attributes: List of attributes to retrieve or ldap3.ALL_ATTRIBUTES
            search_base: Base DN for the search, defaults to domain base
            **kwargs: Additional arguments for the search operation

        Returns:
            List of matching LDAP entries

        Raises:
            DirectoryUnavailable: If there is no connection or the search fails
        """
        if self.ldap_conn is None:
            raise DirectoryUnavailable("LDAP connection is not established")

        if search_base is None:
            search_base = self.default_path

        try:
            results = self.ldap_conn.extend.standard.paged_search(
                search_base=search_base,
                search_filter=search_filter,
                attributes=attributes,
                paged_size=PAGE_SIZE,
                generator=True,
                **kwargs,
            )

            # The generator fetches pages lazily
            entries = [
                LDAPEntry(**entry)
                for entry in results
                if entry["type"] == "searchResEntry"
            ]
        except LDAPException as e:
            raise DirectoryUnavailable(
                f"LDAP search {search_filter!r} failed: {e}"
            ) from e

        if self.ldap_conn.result["result"] != RESULT_SUCCESS:
            raise DirectoryUnavailable(
                f"LDAP search {search_filter!r} failed: "
                f"({self.ldap_conn.result['description']}) {self.ldap_conn.result['message']}"
            )

        return entries
