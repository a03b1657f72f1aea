"""
Target management module for Certaudit.

A Target describes the domain controller to read the PKI configuration from
and the account to authenticate with:

- Authentication parameters (username, password, hashes, Kerberos keys and caches)
- Target name resolution (DNS, local resolution, IP address validation)
- Connection settings (timeout, LDAP scheme and port)
"""

import argparse
import os
import socket
from typing import Dict, Optional, Tuple

from dns.resolver import Resolver
from impacket.krb5.ccache import CCache

from certaudit.lib.errors import DirectoryUnavailable, handle_error
from certaudit.lib.logger import logging


class Target:
    """
    Class representing an authentication target with all necessary connection details.
    """

    def __init__(
        self,
        resolver: "DnsResolver",
        domain: str = "",
        username: str = "",
        password: Optional[str] = None,
        remote_name: str = "",
        hashes: Optional[str] = None,
        lmhash: str = "",
        nthash: str = "",
        do_kerberos: bool = False,
        do_simple: bool = False,
        aes: Optional[str] = None,
        dc_ip: Optional[str] = None,
        dc_host: Optional[str] = None,
        target_ip: Optional[str] = None,
        timeout: int = 5,
        ldap_scheme: str = "ldaps",
        ldap_port: Optional[int] = None,
    ) -> None:
        """
        Args:
            resolver: DNS resolver for hostname resolution
            domain: Domain name (empty string if not specified)
            username: Username (empty string if not specified)
            password: Password (None if not specified)
            remote_name: Remote target name (empty string if not specified)
            hashes: NTLM hashes in format LM:NT
            lmhash: LM hash
            nthash: NT hash
            do_kerberos: Use Kerberos authentication
            do_simple: Use simple authentication
            aes: AES key for Kerberos authentication
            dc_ip: Domain controller IP
            dc_host: Domain controller hostname
            target_ip: Target IP address
            timeout: Connection timeout in seconds
            ldap_scheme: LDAP scheme (default is ldaps)
            ldap_port: LDAP port to use
        """
        self.resolver = resolver

        self.domain: str = domain
        self.username: str = username
        self.password: Optional[str] = password
        self.remote_name: str = remote_name
        self.hashes: Optional[str] = hashes
        self.lmhash: str = lmhash
        self.nthash: str = nthash
        self.do_kerberos: bool = do_kerberos
        self.do_simple: bool = do_simple
        self.aes: Optional[str] = aes
        self.dc_ip: Optional[str] = dc_ip
        self.dc_host: Optional[str] = dc_host
        self.target_ip: Optional[str] = target_ip
        self.timeout: int = timeout
        self.ldap_scheme: str = ldap_scheme
        self.ldap_port: Optional[int] = ldap_port

    @staticmethod
    def from_options(options: argparse.Namespace) -> "Target":
        """
        Create a Target from command line options.

        The domain controller is the target: its address comes from -target,
        -dc-host, -dc-ip or the domain of the account, in that order.

        Args:
            options: Command line options

        Returns:
            Target: Configured target object

        Raises:
            DirectoryUnavailable: If no domain controller can be determined
        """
        dc_ip = getattr(options, "dc_ip", None)
        dc_host = getattr(options, "dc_host", None)

        target_ip = getattr(options, "target_ip", None)
        target = getattr(options, "target", None)

        ns = getattr(options, "ns", None) or dc_ip
        dns_tcp = getattr(options, "dns_tcp", False)

        timeout = getattr(options, "timeout", 10)

        principal = getattr(options, "username", None)
        password = getattr(options, "password", None)
        hashes = getattr(options, "hashes", None)

        do_kerberos = getattr(options, "do_kerberos", False)
        do_simple = getattr(options, "do_simple", False)
        aes = getattr(options, "aes", None)
        no_pass = getattr(options, "no_pass", False)

        ldap_scheme = getattr(options, "ldap_scheme", "ldaps")
        ldap_port = getattr(options, "ldap_port", None)

        # Parse username and domain from principal format (user@DOMAIN)
        domain = ""
        username = ""

        if principal is not None:
            parts = principal.split("@")
            if len(parts) == 1:
                username = parts[0]
            else:
                username = "@".join(parts[:-1])
                domain = parts[-1]

        # Without explicit credentials, fall back to the Kerberos credential cache
        use_ccache = (
            not username
            and password is None
            and hashes is None
            and aes is None
            and os.getenv("KRB5CCNAME") is not None
        )

        if (do_kerberos or use_ccache) and not username:
            principal = get_kerberos_principal()
            if principal:
                username, domain = principal
                do_kerberos = True

        domain = domain.upper()
        username = username.upper()

        if len(username) == 0:
            logging.error("Username is not specified")

        if (
            not password
            and username != ""
            and hashes is None
            and aes is None
            and no_pass is not True
            and do_kerberos is not True
        ):
            from getpass import getpass

            password = getpass("Password:")

        lmhash = ""
        nthash = ""
        if hashes is not None:
            hash_parts = hashes.split(":")
            if len(hash_parts) == 1:
                nthash = hash_parts[0]
                lmhash = nthash
            else:
                lmhash, nthash = hash_parts
                if len(lmhash) == 0:
                    lmhash = nthash

        # AES key implies Kerberos
        if aes is not None:
            do_kerberos = True

        remote_name = target or ""
        if not remote_name and dc_host:
            remote_name = dc_host

        if do_kerberos and not remote_name:
            logging.warning(
                "Target name (-target) and DC host (-dc-host) not specified and "
                "Kerberos authentication is used. This might fail"
            )

        if not remote_name:
            if target_ip:
                remote_name = target_ip
            elif dc_ip:
                remote_name = dc_ip
            elif domain:
                logging.debug(
                    f"Target name (-target) and DC host (-dc-host) not specified. Using domain {domain!r} as target name"
                )
                remote_name = domain
            else:
                raise DirectoryUnavailable(
                    "Could not find a target in the specified options. "
                    "Specify -dc-ip, -target or an account with its domain, or set KRB5CCNAME"
                )

        if not dc_host:
            dc_host = remote_name

        if not target_ip and dc_ip:
            target_ip = dc_ip

        if ldap_port is None:
            ldap_port = 389 if ldap_scheme == "ldap" else 636

        if dc_ip is None and is_ip(remote_name):
            dc_ip = remote_name

        if is_ip(remote_name):
            target_ip = remote_name

        ns = ns or dc_ip

        logging.debug(f"Nameserver: {ns!r}")
        logging.debug(f"DC IP: {dc_ip!r}")
        logging.debug(f"DC Host: {dc_host!r}")
        logging.debug(f"Target IP: {target_ip!r}")
        logging.debug(f"Remote Name: {remote_name!r}")
        logging.debug(f"Domain: {domain!r}")
        logging.debug(f"Username: {username!r}")

        resolver = DnsResolver.create(ns=ns, dc_ip=dc_ip, dns_tcp=dns_tcp)

        if target_ip is None:
            target_ip = resolver.resolve(remote_name)

        if dc_ip is None and dc_host:
            dc_ip = resolver.resolve(dc_host)

        return Target(
            resolver,
            domain=domain,
            username=username,
            password=password,
            remote_name=remote_name,
            hashes=hashes,
            lmhash=lmhash,
            nthash=nthash,
            aes=aes,
            do_kerberos=do_kerberos,
            do_simple=do_simple,
            dc_ip=dc_ip,
            dc_host=dc_host,
            target_ip=target_ip,
            timeout=timeout,
            ldap_scheme=ldap_scheme,
            ldap_port=ldap_port,
        )

    def __repr__(self) -> str:
        return f"<Target ({self.__dict__!r})>"


class DnsResolver:
    """
    DNS resolver for hostname resolution with caching capabilities.
    """

    def __init__(self) -> None:
        self.resolver: Resolver = Resolver(configure=False)
        self.use_tcp: bool = False
        self.mappings: Dict[str, str] = {}

    @staticmethod
    def create(
        ns: Optional[str] = None,
        dc_ip: Optional[str] = None,
        dns_tcp: bool = False,
    ) -> "DnsResolver":
        """
        Create a DnsResolver with specified parameters.

        Args:
            ns: Nameserver to use
            dc_ip: Domain controller IP, used as nameserver when ns is not set
            dns_tcp: Whether to use TCP for DNS queries
        """
        resolver = DnsResolver()

        # Only one nameserver: the resolver fails as soon as one of them fails
        nameserver = ns or dc_ip

        if nameserver is not None:
            resolver.resolver.nameservers = [nameserver]

        resolver.use_tcp = dns_tcp

        return resolver

    def resolve(self, hostname: str) -> str:
        """
        Resolve hostname to IP address using DNS, then local resolution.
        Uses cache for previously resolved hostnames.

        Returns:
            str: The resolved IP address or the original hostname if resolution fails
        """
        if hostname in self.mappings:
            logging.debug(
                f"Resolved {hostname!r} from cache: {self.mappings[hostname]}"
            )
            return self.mappings[hostname]

        if is_ip(hostname):
            return hostname

        ip_addr = None

        if self.resolver.nameservers:
            logging.debug(
                f"Trying to resolve {hostname!r} at {self.resolver.nameservers[0]!r}"
            )
            try:
                answers = self.resolver.resolve(hostname, tcp=self.use_tcp)
                if answers:
                    ip_addr = str(answers[0])
            except Exception as e:
                logging.warning(f"DNS resolution failed: {e}")
                handle_error(True)
        else:
            logging.debug(f"Trying to resolve {hostname!r} locally")

        if ip_addr is None:
            try:
                ip_addr = socket.gethostbyname(hostname)
            except OSError:
                ip_addr = None

        if ip_addr is None:
            logging.warning(f"Failed to resolve: {hostname}")
            return hostname

        self.mappings[hostname] = ip_addr
        return ip_addr


def is_ip(hostname: Optional[str]) -> bool:
    """
    Check if the given hostname is an IPv4 address.
    """
    if hostname is None:
        return False

    try:
        _ = socket.inet_aton(hostname)
        return True
    except (OSError, TypeError):
        return False


def get_kerberos_principal() -> Optional[Tuple[str, str]]:
    """
    Get the Kerberos principal from the KRB5CCNAME credential cache.

    Returns:
        Tuple containing (username, domain) or None if not available
    """
    krb5ccname = os.getenv("KRB5CCNAME")
    if krb5ccname is None:
        logging.warning("KRB5CCNAME environment variable not set")
        return None

    try:
        ccache = CCache.loadFile(krb5ccname)
    except Exception:
        return None

    if ccache is None:
        return None

    if ccache.principal is None:
        logging.error("No principal found in CCache file")
        return None

    if ccache.principal.realm is None:
        logging.error("No realm/domain found in CCache file")
        return None

    domain = ccache.principal.realm["data"].decode("utf-8")
    logging.debug(f"Domain retrieved from CCache: {domain}")

    username = "/".join(map(lambda x: x["data"].decode(), ccache.principal.components))
    logging.debug(f"Username retrieved from CCache: {username}")

    return username, domain
