"""
Tests for fmsql.core module.
"""

import pytest
import requests
from unittest.mock import Mock, patch

from fmsql.core.auth import Authenticator, CloudCredentials
from fmsql.core.envelope import ApplicationError, Opaque, Success, decode_response
from fmsql.core.errors import (
    AuthFault,
    FMDataError,
    NotSupportedFault,
    ParseFault,
    RequestFault,
    TranslationFault,
)
from fmsql.core.session import FMConfig, FMDataSession, build_base_address
from fmsql.core.tokens import FileTokenStore, MemoryTokenStore, default_token_path


class TestErrors:
    """Tests for the fault taxonomy."""

    def test_message_and_code(self):
        err = RequestFault("Field is missing", 102)
        assert err.message == "Field is missing"
        assert err.code == 102
        assert str(err) == "Field is missing (code 102)"

    def test_default_kinds(self):
        assert RequestFault("x").kind == RequestFault.APPLICATION
        assert ParseFault("x").kind == "parse"
        assert TranslationFault("x").kind == "translation"
        assert NotSupportedFault("x").kind == "not-supported"

    def test_kind_override(self):
        err = AuthFault("Not Found", 404, kind=AuthFault.NOT_FOUND)
        assert err.kind == "not-found"
        assert err.code == 404

    def test_all_faults_share_base(self):
        for cls in (AuthFault, RequestFault, ParseFault, TranslationFault, NotSupportedFault):
            assert issubclass(cls, FMDataError)


class TestFMConfig:
    """Tests for FMConfig dataclass."""

    def test_default_values(self):
        cfg = FMConfig(host="fms.example.com", database="Contacts")
        assert cfg.timeout == 60.0
        assert cfg.retries == 0
        assert cfg.verify is True
        assert cfg.is_cloud is False

    def test_cloud_from_server_version(self):
        cfg = FMConfig(host="h", database="d", server_version="FMCloud")
        assert cfg.is_cloud is True

    def test_cloud_flag(self):
        cfg = FMConfig(host="h", database="d", cloud=True)
        assert cfg.is_cloud is True


class TestBuildBaseAddress:

    def test_adds_https_scheme(self):
        assert build_base_address("fms.example.com", "Contacts") == (
            "https://fms.example.com/fmi/data/v1/databases/Contacts/"
        )

    def test_keeps_explicit_scheme(self):
        assert build_base_address("http://10.0.0.5/", "Sales") == (
            "http://10.0.0.5/fmi/data/v1/databases/Sales/"
        )

    def test_strips_trailing_slash(self):
        assert build_base_address("https://fms.example.com/", "Contacts").count("//") == 1


class TestDecodeResponse:
    """Tests for the response envelope decoder."""

    def test_success(self):
        body = b'{"response": {"data": [{"recordId": "1"}]}, "messages": [{"code": "0", "message": "OK"}]}'
        decoded = decode_response(200, "OK", body)
        assert isinstance(decoded, Success)
        assert decoded.data == [{"recordId": "1"}]

    def test_success_without_data(self):
        decoded = decode_response(200, "OK", b'{"response": {"recordId": "7", "modId": "0"}, "messages": []}')
        assert isinstance(decoded, Success)
        assert decoded.data is None
        assert decoded.response["recordId"] == "7"

    def test_data_info(self):
        body = b'{"response": {"dataInfo": {"foundCount": 3}, "data": []}, "messages": []}'
        decoded = decode_response(200, "OK", body)
        assert decoded.diagnostics == {"foundCount": 3}

    def test_application_error(self):
        body = b'{"response": {}, "messages": [{"code": "102", "message": "Field is missing"}]}'
        decoded = decode_response(500, "Internal Server Error", body)
        assert isinstance(decoded, ApplicationError)
        assert decoded.code == 102
        assert decoded.message == "Field is missing"

    def test_html_body_is_opaque(self):
        decoded = decode_response(502, "Bad Gateway", b"<html>proxy error</html>")
        assert isinstance(decoded, Opaque)
        assert decoded.status == 502
        assert decoded.reason == "Bad Gateway"

    def test_empty_body_is_opaque(self):
        assert isinstance(decode_response(500, "Internal Server Error", b""), Opaque)

    def test_error_without_messages_is_opaque(self):
        assert isinstance(decode_response(500, "Oops", b'{"response": {}, "messages": []}'), Opaque)


class TestTokenStores:

    def test_file_store_round_trip(self, tmp_path):
        store = FileTokenStore(tmp_path / "token.txt")
        assert store.get() is None
        store.put("abc123")
        assert store.get() == "abc123"

    def test_file_store_clear_empties_file(self, tmp_path):
        path = tmp_path / "token.txt"
        store = FileTokenStore(path)
        store.put("abc123")
        store.clear()
        assert path.exists()
        assert path.read_text() == ""
        assert store.get() is None

    def test_file_store_strips_whitespace(self, tmp_path):
        path = tmp_path / "token.txt"
        path.write_text("abc123\n")
        assert FileTokenStore(path).get() == "abc123"

    def test_default_path(self):
        assert default_token_path().name == "fmp-token.txt"
        assert FileTokenStore().path == default_token_path()

    def test_memory_store(self):
        store = MemoryTokenStore()
        assert store.get() is None
        store.put("t")
        assert store.get() == "t"
        store.clear()
        assert store.get() is None


class TestAuthenticator:
    """Tests for token acquisition."""

    def _auth(self, cfg, http, store, provider=None):
        return Authenticator(cfg, build_base_address(cfg.host, cfg.database), http, store, provider)

    def test_cached_token_skips_login(self, cfg):
        http = Mock()
        auth = self._auth(cfg, http, MemoryTokenStore("cached"))
        assert auth.authenticate() == "cached"
        http.post.assert_not_called()

    def test_login_persists_token(self, cfg, login_ok):
        http = Mock()
        http.post.return_value = login_ok
        store = MemoryTokenStore()
        auth = self._auth(cfg, http, store)

        assert auth.authenticate() == "fresh-token"
        assert store.get() == "fresh-token"

        args, kwargs = http.post.call_args
        assert args[0] == "https://fms.example.com/fmi/data/v1/databases/Contacts/sessions"
        assert kwargs["auth"] == ("api", "secret")
        assert kwargs["json"] == {}

    def test_login_not_found(self, cfg, make_response):
        http = Mock()
        http.post.return_value = make_response(404, "<html>missing</html>")
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, http, MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.NOT_FOUND
        assert exc.value.code == 404
        assert exc.value.message == "Not Found"

    def test_login_invalid_credentials(self, cfg, fm_error):
        http = Mock()
        http.post.return_value = fm_error(212, "Invalid user account and/or password", status=401)
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, http, MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.INVALID_CREDENTIALS
        assert exc.value.code == 212
        assert exc.value.message == "Invalid user account and/or password"

    def test_login_connect_failure(self, cfg):
        http = Mock()
        http.post.side_effect = requests.ConnectionError("Connection refused")
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, http, MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.CONNECT
        assert exc.value.code == -1
        assert "Connection refused" in exc.value.message

    def test_login_success_without_token(self, cfg, fm_ok):
        http = Mock()
        http.post.return_value = fm_ok()
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, http, MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.UNKNOWN
        assert exc.value.message == "Unknown error"

    def test_login_opaque_reply(self, cfg, make_response):
        http = Mock()
        http.post.return_value = make_response(500, b"")
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, http, MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.UNKNOWN

    def test_force_refresh_discards_cache(self, cfg, login_ok):
        http = Mock()
        http.post.return_value = login_ok
        store = MemoryTokenStore("stale")
        auth = self._auth(cfg, http, store)

        assert auth.force_refresh() == "fresh-token"
        assert store.get() == "fresh-token"
        http.post.assert_called_once()

    def test_cloud_provider(self):
        cfg = FMConfig(host="acme.account.filemaker-cloud.com", database="Contacts",
                       user="u@example.com", password="pw", server_version="FMCloud")
        http = Mock()
        provider = Mock(return_value="cloud-token")
        store = MemoryTokenStore()

        token = self._auth(cfg, http, store, provider).authenticate()

        assert token == "cloud-token"
        assert store.get() == "cloud-token"
        provider.assert_called_once_with(CloudCredentials(
            host="acme.account.filemaker-cloud.com",
            user="u@example.com",
            password="pw",
            database="Contacts",
        ))
        http.post.assert_not_called()

    def test_cloud_without_provider(self):
        cfg = FMConfig(host="h", database="d", cloud=True)
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, Mock(), MemoryTokenStore()).authenticate()
        assert exc.value.kind == AuthFault.UNKNOWN

    def test_cloud_provider_failure_is_wrapped(self):
        cfg = FMConfig(host="h", database="d", cloud=True)
        provider = Mock(side_effect=ValueError("NotAuthorizedException"))
        with pytest.raises(AuthFault) as exc:
            self._auth(cfg, Mock(), MemoryTokenStore(), provider).authenticate()
        assert exc.value.kind == AuthFault.UNKNOWN
        assert "NotAuthorizedException" in exc.value.message


class TestFMDataSession:
    """Tests for FMDataSession request handling."""

    def test_session_setup(self, session, mock_http):
        assert session.base_address == "https://fms.example.com/fmi/data/v1/databases/Contacts/"
        assert mock_http.mount.call_count == 2
        mock_http.headers.update.assert_called_once()

    def test_context_manager(self, cfg, token_store, mock_http):
        with FMDataSession(cfg, token_store=token_store):
            pass
        mock_http.close.assert_called_once()

    def test_lazy_authentication_uses_cached_token(self, session, mock_http, fm_ok):
        mock_http.request.return_value = fm_ok(data=[])
        session.perform_request("GET", "layouts/Contacts/records")

        mock_http.post.assert_not_called()
        headers = mock_http.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer cached-token"
        assert headers["Content-Type"] == "application/json"

    def test_request_url_and_options(self, session, mock_http, fm_ok):
        mock_http.request.return_value = fm_ok(data=[])
        session.perform_request("POST", "layouts/Contacts/_find", {"json": {"query": [{"name": "==Ada"}]}})

        kwargs = mock_http.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://fms.example.com/fmi/data/v1/databases/Contacts/layouts/Contacts/_find"
        assert kwargs["json"] == {"query": [{"name": "==Ada"}]}
        assert kwargs["timeout"] == 60.0

    def test_returns_data(self, session, mock_http, fm_ok, sample_records):
        mock_http.request.return_value = fm_ok(data=sample_records, dataInfo={"foundCount": 2})
        result = session.perform_request("GET", "layouts/Contacts/records")
        assert result == sample_records
        assert session.last_metadata == {"foundCount": 2}

    def test_returns_response_without_data(self, session, mock_http, fm_ok):
        mock_http.request.return_value = fm_ok(recordId="42", modId="0")
        result = session.perform_request("POST", "layouts/Contacts/records")
        assert result == {"recordId": "42", "modId": "0"}

    def test_script_result(self, session, mock_http, fm_ok):
        mock_http.request.return_value = fm_ok(scriptError="0", scriptResult="done")
        result = session.perform_request("GET", "layouts/Contacts/script/Tidy", want_script_result=True)
        assert result.error == "0"
        assert result.result == "done"

    def test_no_records_is_empty_list(self, session, mock_http, fm_error):
        mock_http.request.return_value = fm_error(401, "No records match the request")
        assert session.perform_request("POST", "layouts/Contacts/_find") == []
        assert session.retried is False

    def test_invalid_token_refreshes_once(self, session, mock_http, fm_error, fm_ok, login_ok, sample_records):
        mock_http.request.side_effect = [
            fm_error(952, "Invalid FileMaker Data API token (*)", status=500),
            fm_ok(data=sample_records),
        ]
        mock_http.post.return_value = login_ok

        result = session.perform_request("GET", "layouts/Contacts/records")

        assert result == sample_records
        assert session.retried is True
        assert session.token == "fresh-token"
        mock_http.post.assert_called_once()
        second = mock_http.request.call_args_list[1].kwargs
        assert second["headers"]["Authorization"] == "Bearer fresh-token"

    def test_code_105_is_treated_as_expired_session(self, session, mock_http, fm_error, fm_ok, login_ok):
        mock_http.request.side_effect = [
            fm_error(105, "Layout is missing"),
            fm_ok(data=[]),
        ]
        mock_http.post.return_value = login_ok
        assert session.perform_request("GET", "layouts/Contacts/records") == []
        assert session.retried is True

    def test_invalid_token_twice_raises_auth_fault(self, session, mock_http, fm_error, login_ok):
        mock_http.request.side_effect = [
            fm_error(952, "Invalid FileMaker Data API token (*)"),
            fm_error(952, "Invalid FileMaker Data API token (*)"),
        ]
        mock_http.post.return_value = login_ok

        with pytest.raises(RequestFault) as exc:
            session.perform_request("GET", "layouts/Contacts/records")

        assert exc.value.kind == RequestFault.AUTH
        assert exc.value.code == 952
        assert mock_http.request.call_count == 2
        mock_http.post.assert_called_once()

    def test_http_401_refreshes_once(self, session, mock_http, make_response, fm_ok, login_ok):
        mock_http.request.side_effect = [make_response(401, b""), fm_ok(data=[])]
        mock_http.post.return_value = login_ok

        assert session.perform_request("GET", "layouts/Contacts/records") == []
        assert session.retried is True

    def test_http_401_twice_raises_auth_fault(self, session, mock_http, make_response, login_ok):
        mock_http.request.side_effect = [make_response(401, b""), make_response(401, b"")]
        mock_http.post.return_value = login_ok

        with pytest.raises(RequestFault) as exc:
            session.perform_request("GET", "layouts/Contacts/records")
        assert exc.value.kind == RequestFault.AUTH
        assert exc.value.code == 401
        mock_http.post.assert_called_once()

    def test_retried_resets_per_request(self, session, mock_http, fm_error, fm_ok, login_ok):
        mock_http.request.side_effect = [fm_error(952, "Invalid token"), fm_ok(data=[]), fm_ok(data=[])]
        mock_http.post.return_value = login_ok

        session.perform_request("GET", "layouts/Contacts/records")
        assert session.retried is True
        session.perform_request("GET", "layouts/Contacts/records")
        assert session.retried is False

    def test_application_error(self, session, mock_http, fm_error):
        mock_http.request.return_value = fm_error(102, "Field is missing")
        with pytest.raises(RequestFault) as exc:
            session.perform_request("POST", "layouts/Contacts/records")
        assert exc.value.kind == RequestFault.APPLICATION
        assert exc.value.code == 102
        assert exc.value.message == "Field is missing"

    def test_opaque_reply(self, session, mock_http, make_response):
        mock_http.request.return_value = make_response(502, "<html>Bad Gateway</html>")
        with pytest.raises(RequestFault) as exc:
            session.perform_request("GET", "layouts/Contacts/records")
        assert exc.value.kind == RequestFault.OPAQUE
        assert exc.value.code == 502
        assert exc.value.message == "Bad Gateway"

    def test_transport_failure(self, session, mock_http):
        mock_http.request.side_effect = requests.ConnectionError("Connection reset by peer")
        with pytest.raises(RequestFault) as exc:
            session.perform_request("GET", "layouts/Contacts/records")
        assert exc.value.kind == RequestFault.CONNECT
        assert exc.value.code == -1

    def test_refresh_failure_propagates_auth_fault(self, session, mock_http, fm_error, make_response):
        mock_http.request.return_value = fm_error(952, "Invalid token")
        mock_http.post.return_value = make_response(404, b"")
        with pytest.raises(AuthFault):
            session.perform_request("GET", "layouts/Contacts/records")

    @patch("fmsql.core.session.HTTPAdapter")
    @patch("fmsql.core.session.Retry")
    def test_application_errors_not_retried_by_transport(self, mock_retry, mock_adapter, cfg, mock_http):
        cfg.retries = 3
        FMDataSession(cfg, token_store=MemoryTokenStore("t"))

        kwargs = mock_retry.call_args.kwargs
        assert kwargs["total"] == 3
        assert 500 not in kwargs["status_forcelist"]
        assert 503 in kwargs["status_forcelist"]
        mock_adapter.assert_called_once_with(max_retries=mock_retry.return_value)

    @patch("fmsql.core.session.requests.Session")
    def test_default_token_store_is_file_backed(self, mock_session_class, cfg):
        session = FMDataSession(cfg)
        assert isinstance(session.authenticator.store, FileTokenStore)
