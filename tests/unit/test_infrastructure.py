"""Unit tests for the infrastructure layer (HTTP client, email, identity providers)."""

import json

import httpx
import pytest

from config import EmailSettings, OAuthProviderSettings
from infrastructure.email.protocol import Notifier
from infrastructure.email.zeptomail import ZeptoMailNotifier
from infrastructure.http_client import HttpClient
from infrastructure.oauth_clients import (
    PROVIDER_STRATEGIES,
    GoogleStrategy,
    extract_user_info_from_google,
    init_oauth,
)


# ── Helpers ───────────────────────────────────────────────────────────────────


class _Recorder:
    def __init__(self, status_code=200, raise_exc=None):
        self.status_code = status_code
        self.raise_exc = raise_exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc
        return httpx.Response(self.status_code, json={"data": []})

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def _notifier(recorder, token="enc-token") -> ZeptoMailNotifier:
    settings = EmailSettings(
        zepto_api_token=token,
        zepto_from_email="no-reply@myhealthlink.app",
        zepto_from_name="MyHealthLink",
    )
    http = HttpClient(transport=httpx.MockTransport(recorder))
    return ZeptoMailNotifier(settings, http, app_name="MyHealthLink")


# ── HttpClient ────────────────────────────────────────────────────────────────


class TestHttpClient:
    async def test_base_url_and_methods(self):
        seen = []

        def handler(request):
            seen.append((request.method, str(request.url)))
            return httpx.Response(204)

        async with HttpClient(base_url="http://api.test", transport=httpx.MockTransport(handler)) as http:
            await http.get("/a")
            await http.post("/b", json={})
            await http.request("PUT", "/c")

        assert seen == [
            ("GET", "http://api.test/a"),
            ("POST", "http://api.test/b"),
            ("PUT", "http://api.test/c"),
        ]


# ── ZeptoMailNotifier ─────────────────────────────────────────────────────────


class TestZeptoMailNotifier:
    def test_satisfies_protocol(self):
        assert isinstance(_notifier(_Recorder()), Notifier)

    async def test_otp_email_payload(self):
        recorder = _Recorder(status_code=201)
        notifier = _notifier(recorder)

        assert await notifier.send_otp_email("ada@x.com", "Ada", "123456") is True

        request = recorder.requests[0]
        assert str(request.url) == "https://api.zeptomail.com/v1.1/email"
        assert request.headers["Authorization"] == "Zoho-enczapikey enc-token"
        body = recorder.last_json
        assert body["subject"] == "Verify Your MyHealthLink Account"
        assert body["to"][0]["email_address"] == {"address": "ada@x.com", "name": "Ada"}
        assert "123456" in body["htmlbody"]
        assert "123456" in body["textbody"]
        assert "10 minutes" in body["textbody"]

    async def test_resend_subject(self):
        recorder = _Recorder()
        await _notifier(recorder).send_otp_email("ada@x.com", "Ada", "654321", is_resend=True)
        assert recorder.last_json["subject"] == "New Verification Code - MyHealthLink"

    async def test_prefixed_token_not_doubled(self):
        recorder = _Recorder()
        notifier = _notifier(recorder, token="Zoho-enczapikey enc-token")
        await notifier.send_otp_email("ada@x.com", None, "123456")
        assert recorder.requests[0].headers["Authorization"] == "Zoho-enczapikey enc-token"
        assert recorder.last_json["to"][0]["email_address"]["name"] == "ada@x.com"

    async def test_reset_email_contains_link(self):
        recorder = _Recorder()
        url = "http://localhost:3000/reset-password/abc123"
        assert await _notifier(recorder).send_password_reset_email("ada@x.com", "Ada", url)
        body = recorder.last_json
        assert body["subject"] == "Password Reset Request - MyHealthLink"
        assert url in body["htmlbody"]
        assert url in body["textbody"]

    async def test_user_name_is_escaped(self):
        recorder = _Recorder()
        await _notifier(recorder).send_otp_email("ada@x.com", "<b>Ada</b>", "123456")
        assert "<b>Ada</b>" not in recorder.last_json["htmlbody"]
        assert "&lt;b&gt;Ada&lt;/b&gt;" in recorder.last_json["htmlbody"]

    async def test_missing_token_sends_nothing(self):
        recorder = _Recorder()
        assert await _notifier(recorder, token="").send_otp_email("ada@x.com", "Ada", "1") is False
        assert recorder.requests == []

    async def test_non_2xx_is_failure(self):
        assert await _notifier(_Recorder(status_code=500)).send_otp_email("ada@x.com", "Ada", "1") is False

    async def test_transport_error_is_failure(self):
        recorder = _Recorder(raise_exc=httpx.ConnectError("refused"))
        assert await _notifier(recorder).send_password_reset_email("ada@x.com", "Ada", "u") is False


# ── Identity providers ────────────────────────────────────────────────────────


class TestExtractGoogle:
    def test_full_profile(self):
        info = extract_user_info_from_google(
            {"sub": 123, "email": " Ada@X.com ", "email_verified": True, "name": "Ada Lovelace"}
        )
        assert info == {
            "provider_user_id": "123",
            "email": "ada@x.com",
            "email_verified": True,
            "name": "Ada Lovelace",
        }

    def test_name_from_parts(self):
        info = extract_user_info_from_google(
            {"sub": "s", "email": "a@x.com", "given_name": "Ada", "family_name": "Lovelace"}
        )
        assert info["name"] == "Ada Lovelace"
        assert info["email_verified"] is False

    def test_missing_fields(self):
        info = extract_user_info_from_google({})
        assert info["provider_user_id"] == ""
        assert info["email"] == ""


class TestGoogleStrategy:
    def test_registered(self):
        assert isinstance(PROVIDER_STRATEGIES["google"], GoogleStrategy)

    async def test_uses_id_token_claims(self, mocker):
        client = mocker.AsyncMock()
        token = {"userinfo": {"sub": "s1", "email": "a@x.com", "email_verified": True}}
        info = await GoogleStrategy().fetch_user_info(client, token)
        assert info["provider_user_id"] == "s1"
        client.get.assert_not_called()

    async def test_falls_back_to_userinfo_endpoint(self, mocker):
        response = mocker.MagicMock()
        response.json.return_value = {"sub": "s2", "email": "b@x.com"}
        client = mocker.AsyncMock()
        client.get.return_value = response
        info = await GoogleStrategy().fetch_user_info(client, {"access_token": "t"})
        assert info["provider_user_id"] == "s2"
        assert client.get.await_args.args[0].endswith("/v1/userinfo")


class TestInitOAuth:
    def test_no_providers(self):
        oauth, providers = init_oauth(OAuthProviderSettings(
            google_oauth_client_id="", google_oauth_client_secret=""
        ))
        assert oauth is None
        assert providers == {}

    def test_google_registered(self):
        oauth, providers = init_oauth(OAuthProviderSettings(
            google_oauth_client_id="cid", google_oauth_client_secret="csecret"
        ))
        assert oauth is not None
        assert set(providers) == {"google"}
