"""Tests for the LDAP-backed find command."""

import json
from unittest.mock import MagicMock

import ldap3
import pytest
from impacket.krb5.kerberosv5 import KerberosError
from ldap3.core.exceptions import LDAPSocketOpenError

from certaudit.commands.find import NO_RISK_MESSAGE, TABLE_COLUMNS, Find
from certaudit.lib import ldap as ldap_module
from certaudit.lib import risk
from certaudit.lib.errors import DirectoryUnavailable
from certaudit.lib.ldap import LDAPConnection
from certaudit.lib.risk import get_risky_templates
from certaudit.lib.structs import Finding

from conftest import make_ca_entry, make_template_entry

CONFIGURATION_PATH = "CN=Configuration,DC=corp,DC=local"


def create_connection(templates, cas):
    connection = MagicMock(spec=LDAPConnection)
    connection.configuration_path = CONFIGURATION_PATH

    def search(search_filter, attributes=None, search_base=None, **kwargs):
        if "pKICertificateTemplate" in search_filter:
            return templates
        if "pKIEnrollmentService" in search_filter:
            return cas
        return []

    connection.search.side_effect = search
    return connection


@pytest.fixture
def vulnerable_connection():
    return create_connection(
        [
            make_template_entry("WebUser", 1, 0, ["1.3.6.1.5.5.7.3.2"]),
            make_template_entry("SubCA", 1, 0, []),
            make_template_entry("User", 0xA6000000, 0x29, ["1.3.6.1.5.5.7.3.2"]),
            make_template_entry("Approval", 1, 2, ["2.5.29.37.0"]),
        ],
        [
            make_ca_entry("CORP-CA", "ca.corp.local", ["WebUser", "SubCA", "User"]),
            make_ca_entry("LAB-CA", None, ["WebUser", "Approval"]),
        ],
    )


class TestFind:
    def test_findings(self, vulnerable_connection, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        findings, has_risk = Find(connection=vulnerable_connection).find()

        assert has_risk is True
        assert findings == [
            Finding("WebUser", "ca.corp.local", "CORP-CA", True),
            Finding("SubCA", "ca.corp.local", "CORP-CA", False),
            Finding("WebUser", None, "LAB-CA", True),
        ]

    def test_searches_the_pki_containers(self, vulnerable_connection, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        _ = Find(connection=vulnerable_connection).find()

        search_bases = [
            call.kwargs["search_base"]
            for call in vulnerable_connection.search.call_args_list
        ]
        assert search_bases == [
            f"CN=Certificate Templates,CN=Public Key Services,CN=Services,{CONFIGURATION_PATH}",
            f"CN=Enrollment Services,CN=Public Key Services,CN=Services,{CONFIGURATION_PATH}",
        ]

    def test_table(self, vulnerable_connection, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)

        _ = Find(connection=vulnerable_connection).find()

        lines = [
            line
            for line in capsys.readouterr().out.splitlines()
            if not line.startswith("[")
        ]
        assert lines == [
            "VulnerableTemplateName CAHostName    CAName  IsVulnerableToADUserImpersonation",
            "---------------------- ------------- ------- ---------------------------------",
            "WebUser                ca.corp.local CORP-CA Yes",
            "SubCA                  ca.corp.local CORP-CA No",
            "WebUser                              LAB-CA  Yes",
        ]

    def test_no_risk(self, tmp_path, monkeypatch, capsys, caplog):
        monkeypatch.chdir(tmp_path)
        connection = create_connection(
            [make_template_entry("User", 0, 0)], [make_ca_entry(templates=["User"])]
        )

        findings, has_risk = Find(connection=connection).find()

        assert (findings, has_risk) == ([], False)
        assert NO_RISK_MESSAGE in caplog.text
        assert "VulnerableTemplateName" not in capsys.readouterr().out

    def test_no_cas(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        connection = create_connection([make_template_entry("WebUser")], [])

        assert Find(connection=connection).find() == ([], False)

    def test_search_failure_propagates(self):
        connection = create_connection([], [])
        connection.search.side_effect = DirectoryUnavailable("search failed")

        with pytest.raises(DirectoryUnavailable):
            Find(connection=connection).find()

    def test_no_target(self):
        with pytest.raises(ValueError):
            Find().find()

    def test_connection_closed_after_reads(self, vulnerable_connection, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        _ = Find(connection=vulnerable_connection).find()

        vulnerable_connection.close.assert_called_once_with()

    def test_connection_closed_on_failure(self):
        connection = create_connection([], [])
        connection.search.side_effect = DirectoryUnavailable("search failed")

        with pytest.raises(DirectoryUnavailable):
            Find(connection=connection).find()

        connection.close.assert_called_once_with()

    def test_risky_templates_computed_once(
        self, vulnerable_connection, tmp_path, monkeypatch, caplog
    ):
        monkeypatch.chdir(tmp_path)
        calls = []

        def counting(templates):
            calls.append(templates)
            return get_risky_templates(templates)

        monkeypatch.setattr(risk, "get_risky_templates", counting)

        _ = Find(connection=vulnerable_connection).find()

        assert len(calls) == 1
        assert (
            "Found 2 templates allowing enrollee supplied subject without manager approval"
            in caplog.text
        )


class TestOutputFiles:
    def test_json(self, vulnerable_connection, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        _ = Find(connection=vulnerable_connection, json=True, output="corp").find()

        data = json.loads((tmp_path / "corp_Certaudit.json").read_text())
        assert data["Vulnerable"] is True
        assert data["Findings"][0] == {
            "VulnerableTemplateName": "WebUser",
            "CAHostName": "ca.corp.local",
            "CAName": "CORP-CA",
            "IsVulnerableToADUserImpersonation": "Yes",
        }
        assert data["Findings"][2]["CAHostName"] is None
        assert not (tmp_path / "corp_Certaudit.csv").exists()

    def test_csv(self, vulnerable_connection, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        _ = Find(connection=vulnerable_connection, csv=True, output="corp").find()

        with open(tmp_path / "corp_Certaudit.csv", newline="") as f:
            lines = f.read().splitlines()
        assert lines == [
            ";".join(f'"{column}"' for column in TABLE_COLUMNS),
            '"WebUser";"ca.corp.local";"CORP-CA";"Yes"',
            '"SubCA";"ca.corp.local";"CORP-CA";"No"',
            '"WebUser";"";"LAB-CA";"Yes"',
        ]

    def test_json_without_risk(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        connection = create_connection([], [])

        _ = Find(connection=connection, json=True, output="empty").find()

        data = json.loads((tmp_path / "empty_Certaudit.json").read_text())
        assert data == {"Vulnerable": False, "Findings": []}


class TestLDAPConnection:
    def create(self, scheme="ldaps", port=None, do_kerberos=False):
        target = MagicMock()
        target.ldap_scheme = scheme
        target.ldap_port = port
        target.target_ip = "10.0.0.1"
        target.remote_name = "dc01.corp.local"
        target.domain = "CORP.LOCAL"
        target.username = "JOHN"
        target.password = "Passw0rd!"
        target.hashes = None
        target.do_kerberos = do_kerberos
        target.do_simple = False
        target.timeout = 10
        return LDAPConnection(target)

    def test_default_ports(self):
        assert self.create("ldaps").port == 636
        assert self.create("ldap").port == 389
        assert self.create("ldap", 3268).port == 3268

    def test_search_without_connection(self):
        with pytest.raises(DirectoryUnavailable):
            self.create().search("(objectClass=*)")

    def test_search_returns_entries_only(self):
        connection = self.create()
        connection.ldap_conn = MagicMock()
        connection.ldap_conn.extend.standard.paged_search.return_value = iter(
            [
                {"type": "searchResEntry", "dn": "CN=A", "attributes": {"cn": "A"}},
                {"type": "searchResRef", "uri": ["ldap://corp.local/DC=corp"]},
                {"type": "searchResEntry", "dn": "CN=B", "attributes": {"cn": "B"}},
            ]
        )
        connection.ldap_conn.result = {"result": 0}

        entries = connection.search("(objectClass=*)", ["cn"], search_base="DC=corp")

        assert [entry.get("cn") for entry in entries] == ["A", "B"]
        kwargs = connection.ldap_conn.extend.standard.paged_search.call_args.kwargs
        assert kwargs["paged_size"] == 200
        assert kwargs["search_base"] == "DC=corp"

    def test_search_socket_error(self):
        connection = self.create()
        connection.ldap_conn = MagicMock()
        connection.ldap_conn.extend.standard.paged_search.side_effect = (
            LDAPSocketOpenError("unable to open socket")
        )

        with pytest.raises(DirectoryUnavailable):
            connection.search("(objectClass=*)")

    def test_search_error_result(self):
        connection = self.create()
        connection.ldap_conn = MagicMock()
        connection.ldap_conn.extend.standard.paged_search.return_value = iter([])
        connection.ldap_conn.result = {
            "result": 50,
            "description": "insufficientAccessRights",
            "message": "",
        }

        with pytest.raises(DirectoryUnavailable) as e:
            connection.search("(objectClass=*)")

        assert "insufficientAccessRights" in str(e.value)

    def test_connect_without_target_ip(self):
        connection = self.create()
        connection.target.target_ip = None

        with pytest.raises(DirectoryUnavailable):
            connection.connect()

    def test_close(self):
        connection = self.create()
        ldap_conn = MagicMock()
        connection.ldap_conn = ldap_conn

        connection.close()
        connection.close()

        ldap_conn.unbind.assert_called_once_with()
        assert connection.ldap_conn is None


NAMING_CONTEXTS = {
    "defaultNamingContext": ["DC=corp,DC=local"],
    "configurationNamingContext": [CONFIGURATION_PATH],
    "ldapServiceName": ["corp.local:dc01$@CORP.LOCAL"],
}


class TestLDAPBind:
    def create(self, do_kerberos=False):
        return TestLDAPConnection().create("ldap", do_kerberos=do_kerberos)

    def mock_ldap(self, monkeypatch, bind_result=None, other=None):
        server = MagicMock()
        server.info.other = NAMING_CONTEXTS if other is None else other

        ldap_conn = MagicMock()
        ldap_conn.bound = False
        ldap_conn.bind.return_value = bind_result is None
        ldap_conn.result = bind_result or {
            "result": 0,
            "description": "success",
            "message": "",
        }

        monkeypatch.setattr(ldap3, "Server", MagicMock(return_value=server))
        monkeypatch.setattr(ldap3, "Connection", MagicMock(return_value=ldap_conn))
        return server, ldap_conn

    def test_connect(self, monkeypatch):
        _, ldap_conn = self.mock_ldap(monkeypatch)
        connection = self.create()

        connection.connect()

        assert connection.ldap_conn is ldap_conn
        assert connection.default_path == "DC=corp,DC=local"
        assert connection.configuration_path == CONFIGURATION_PATH
        assert connection.domain == "CORP.LOCAL"
        kwargs = ldap3.Connection.call_args.kwargs
        assert kwargs["user"] == "CORP.LOCAL\\JOHN"
        assert kwargs["authentication"] == ldap3.NTLM

    @pytest.mark.parametrize(
        "result,message",
        [
            (
                {
                    "result": 49,
                    "description": "invalidCredentials",
                    "message": "80090346: LdapErr: DSID-0C09058A, comment: AcceptSecurityContext error",
                },
                "channel binding",
            ),
            (
                {
                    "result": 8,
                    "description": "strongerAuthRequired",
                    "message": "00002028: LdapErr: DSID-0C090259, comment: The server requires binds to turn on integrity checking",
                },
                "LDAP signing is required",
            ),
            (
                {
                    "result": 49,
                    "description": "invalidCredentials",
                    "message": "8009030C: LdapErr: DSID-0C0906B5, comment: AcceptSecurityContext error, data 52e",
                },
                "Invalid credentials",
            ),
            (
                {
                    "result": 53,
                    "description": "unwillingToPerform",
                    "message": "00002077: SvcErr: DSID-03190F80",
                },
                "unwillingToPerform",
            ),
        ],
    )
    def test_failed_bind(self, monkeypatch, result, message):
        self.mock_ldap(monkeypatch, bind_result=result)
        connection = self.create()

        with pytest.raises(DirectoryUnavailable) as e:
            connection.connect()

        assert message in str(e.value)
        assert connection.ldap_conn is None

    def test_invalid_username(self, monkeypatch):
        server, ldap_conn = self.mock_ldap(monkeypatch)
        server.schema = None
        ldap_conn.result = {
            "result": 1,
            "description": "operationsError",
            "message": "000004DC: LdapErr: DSID-0C090A5C, comment: In order to perform this operation a successful bind must be completed on the connection",
        }

        with pytest.raises(DirectoryUnavailable) as e:
            self.create().connect()

        assert "invalid username" in str(e.value)

    def test_missing_schema(self, monkeypatch):
        server, _ = self.mock_ldap(monkeypatch)
        server.schema = None

        with pytest.raises(DirectoryUnavailable) as e:
            self.create().connect()

        assert "schema" in str(e.value)

    def test_missing_configuration_naming_context(self, monkeypatch):
        self.mock_ldap(monkeypatch, other={"defaultNamingContext": ["DC=corp,DC=local"]})

        with pytest.raises(DirectoryUnavailable) as e:
            self.create().connect()

        assert "naming contexts" in str(e.value)

    def test_unreachable_server(self, monkeypatch):
        _, ldap_conn = self.mock_ldap(monkeypatch)
        ldap_conn.bind.side_effect = LDAPSocketOpenError("unable to open socket")

        with pytest.raises(DirectoryUnavailable) as e:
            self.create().connect()

        assert isinstance(e.value.__cause__, LDAPSocketOpenError)

    def test_kerberos_bind(self, monkeypatch):
        _, ldap_conn = self.mock_ldap(monkeypatch)
        ldap_conn.post_send_single_response.return_value = [
            {"result": 0, "description": "success", "message": ""}
        ]
        get_kerberos_type1 = MagicMock(return_value=b"negTokenInit")
        monkeypatch.setattr(ldap_module, "get_kerberos_type1", get_kerberos_type1)
        monkeypatch.setattr(ldap_module, "bind_operation", MagicMock())

        connection = self.create(do_kerberos=True)
        connection.connect()

        assert connection.ldap_conn is ldap_conn
        assert ldap_conn.bound is True
        ldap_conn.bind.assert_not_called()
        assert get_kerberos_type1.call_args.kwargs["target_name"] == "dc01.corp.local"

    def test_kerberos_bind_refused(self, monkeypatch):
        _, ldap_conn = self.mock_ldap(monkeypatch)
        ldap_conn.post_send_single_response.return_value = [
            {
                "result": 49,
                "description": "invalidCredentials",
                "message": "80090308: LdapErr: DSID-0C0906B5",
            }
        ]
        monkeypatch.setattr(
            ldap_module, "get_kerberos_type1", MagicMock(return_value=b"negTokenInit")
        )
        monkeypatch.setattr(ldap_module, "bind_operation", MagicMock())

        with pytest.raises(DirectoryUnavailable) as e:
            self.create(do_kerberos=True).connect()

        assert "Invalid credentials" in str(e.value)

    @pytest.mark.parametrize(
        "error",
        [
            OSError("[Errno Connection error (127.0.0.1:88)] [Errno 111] Connection refused"),
            KerberosError(error=6),
        ],
    )
    def test_kdc_failure(self, monkeypatch, error):
        self.mock_ldap(monkeypatch)
        monkeypatch.setattr(
            ldap_module, "get_kerberos_type1", MagicMock(side_effect=error)
        )

        with pytest.raises(DirectoryUnavailable) as e:
            self.create(do_kerberos=True).connect()

        assert e.value.__cause__ is error
