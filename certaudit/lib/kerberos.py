"""
Kerberos helpers for LDAP SASL authentication.

Builds the SPNEGO token carrying a Kerberos AP-REQ for the directory service,
reusing tickets from the KRB5CCNAME credential cache when they match the
target account, and requesting new ones from the KDC otherwise.
"""

import datetime
import os
from typing import TYPE_CHECKING, Any, Optional, Tuple

from impacket.krb5 import constants
from impacket.krb5.asn1 import AP_REQ, TGS_REP, Authenticator, seq_set
from impacket.krb5.ccache import CCache
from impacket.krb5.crypto import Key
from impacket.krb5.kerberosv5 import KerberosError, getKerberosTGS, getKerberosTGT
from impacket.krb5.types import KerberosTime, Principal, Ticket
from impacket.ntlm import compute_lmhash, compute_nthash
from impacket.spnego import SPNEGO_NegTokenInit, TypesMech
from pyasn1.codec.ber import decoder, encoder
from pyasn1.type.univ import noValue

from certaudit.lib.logger import logging

if TYPE_CHECKING:
    from certaudit.lib.target import Target


def _to_binary(data: Optional[str]) -> bytes:
    if not data:
        return b""
    return bytes.fromhex(data)


def _load_ccache_credentials(
    username: str, domain: str, service: str, target_name: str
) -> Tuple[Optional[dict], Optional[dict]]:
    """
    Look up a service ticket or TGT for the account in the credential cache.

    Returns:
        Tuple of (TGT, TGS), either of which may be None
    """
    krb5ccname = os.getenv("KRB5CCNAME")
    if krb5ccname is None:
        return None, None

    try:
        ccache = CCache.loadFile(krb5ccname)
    except Exception as e:
        logging.debug(f"Failed to load Kerberos cache {krb5ccname!r}: {e}")
        return None, None

    if ccache is None or ccache.principal is None:
        return None, None

    logging.debug(f"Using Kerberos cache: {krb5ccname}")

    ccache_domain = ccache.principal.realm["data"].decode("utf-8")
    ccache_username = "/".join(
        map(lambda x: x["data"].decode(), ccache.principal.components)
    )

    if ccache_username.lower() != username.lower():
        logging.warning(
            f"Username {username!r} does not match username in cache {ccache_username!r}"
        )
        return None, None

    if ccache_domain.lower() != domain.lower():
        logging.warning(
            f"Domain {domain!r} does not match domain in cache {ccache_domain!r}"
        )

    principal = f"{service}/{target_name.upper()}@{domain.upper()}"
    creds = ccache.getCredential(principal, anySPN=False)
    if creds is not None:
        logging.debug(f"Using TGS for {principal!r} from cache")
        return None, creds.toTGS(principal)

    principal = f"krbtgt/{domain.upper()}@{domain.upper()}"
    creds = ccache.getCredential(principal)
    if creds is not None:
        logging.debug("Using TGT from cache")
        return creds.toTGT(), None

    logging.debug("No valid credentials found in cache")
    return None, None


def get_tgs(
    target: "Target", target_name: str, service: str = "ldap"
) -> Tuple[bytes, Any, Key]:
    """
    Obtain a service ticket for service/target_name.

    Args:
        target: Target with the account credentials
        target_name: Host name of the service
        service: Service class of the SPN

    Returns:
        Tuple of (encoded TGS-REP, cipher, session key)

    Raises:
        KerberosError: If the KDC refuses the request
    """
    username = target.username
    domain = target.domain
    password = target.password or ""
    lmhash = _to_binary(target.lmhash)
    nthash = _to_binary(target.nthash)
    aes_key = _to_binary(target.aes)

    tgt, tgs = _load_ccache_credentials(username, domain, service, target_name)

    if tgs is not None:
        return tgs["KDC_REP"], tgs["cipher"], tgs["sessionKey"]

    user_principal = Principal(
        username, type=constants.PrincipalNameType.NT_PRINCIPAL.value
    )

    while True:
        try:
            if tgt is None:
                logging.debug(f"Getting TGT for {username}@{domain}")
                tgt_rep, cipher, _, session_key = getKerberosTGT(
                    user_principal,
                    password,
                    domain,
                    lmhash,
                    nthash,
                    aes_key,
                    target.dc_ip,
                )
            else:
                tgt_rep = tgt["KDC_REP"]
                cipher = tgt["cipher"]
                session_key = tgt["sessionKey"]

            server_name = Principal(
                f"{service}/{target_name}",
                type=constants.PrincipalNameType.NT_SRV_INST.value,
            )
            logging.debug(f"Getting TGS for {service}/{target_name}")
            tgs_rep, cipher, _, session_key = getKerberosTGS(
                server_name, domain, target.dc_ip, tgt_rep, cipher, session_key
            )
            return tgs_rep, cipher, session_key
        except KerberosError as e:
            # Targets without AES support: retry once with RC4 derived from the password
            if (
                e.getErrorCode() == constants.ErrorCodes.KDC_ERR_ETYPE_NOSUPP.value
                and tgt is None
                and not lmhash
                and not nthash
                and not aes_key
                and password
            ):
                logging.debug("Got KDC_ERR_ETYPE_NOSUPP, falling back to RC4")
                lmhash = compute_lmhash(password)
                nthash = compute_nthash(password)
                continue
            raise


def get_kerberos_type1(
    target: "Target", target_name: str, service: str = "ldap"
) -> bytes:
    """
    Build the SPNEGO NegTokenInit with a Kerberos AP-REQ for the service.

    Returns:
        The encoded SPNEGO token
    """
    tgs, cipher, session_key = get_tgs(target, target_name, service)

    username = Principal(
        target.username, type=constants.PrincipalNameType.NT_PRINCIPAL.value
    )

    blob = SPNEGO_NegTokenInit()
    blob["MechTypes"] = [TypesMech["MS KRB5 - Microsoft Kerberos 5"]]

    tgs = decoder.decode(tgs, asn1Spec=TGS_REP())[0]
    ticket = Ticket()
    ticket.from_asn1(tgs["ticket"])

    ap_req = AP_REQ()
    ap_req["pvno"] = 5
    ap_req["msg-type"] = int(constants.ApplicationTagNumbers.AP_REQ.value)
    ap_req["ap-options"] = constants.encodeFlags([])
    seq_set(ap_req, "ticket", ticket.to_asn1)

    authenticator = Authenticator()
    authenticator["authenticator-vno"] = 5
    authenticator["crealm"] = target.domain
    seq_set(authenticator, "cname", username.components_to_asn1)
    now = datetime.datetime.now(datetime.timezone.utc)

    authenticator["cusec"] = now.microsecond
    authenticator["ctime"] = KerberosTime.to_asn1(now)

    encoded_authenticator = encoder.encode(authenticator)

    # Key usage 11: AP-REQ authenticator
    encrypted_encoded_authenticator = cipher.encrypt(
        session_key, 11, encoded_authenticator, None
    )

    ap_req["authenticator"] = noValue
    ap_req["authenticator"]["etype"] = cipher.enctype
    ap_req["authenticator"]["cipher"] = encrypted_encoded_authenticator

    blob["MechToken"] = encoder.encode(ap_req)

    return blob.getData()
