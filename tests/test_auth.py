from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt
from starlette.requests import Request

from vidhub.config.settings import Settings
from vidhub.api.auth import (
    JWT_ALGORITHM,
    client_ip,
    device_fingerprint,
    issue_token,
    verify_password,
    verify_token,
)

BROWSER = {
    "user-agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/126.0",
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate, br",
    "sec-ch-ua-platform": '"Linux"',
    "sec-ch-ua-mobile": "?0",
    "sec-fetch-site": "same-origin",
    "sec-fetch-mode": "cors",
    "sec-fetch-dest": "empty",
}


def _request(headers=None, client=("203.0.113.5", 51000)) -> Request:
    raw = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in (headers or {}).items()]
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": raw,
        "client": client,
    }
    return Request(scope)


class TestClientIp:
    def test_cloudflare_header_wins(self):
        request = _request({"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "2.2.2.2"})
        assert client_ip(request) == "1.1.1.1"

    def test_first_forwarded_hop(self):
        request = _request({"X-Forwarded-For": "2.2.2.2, 10.0.0.1", "X-Real-IP": "3.3.3.3"})
        assert client_ip(request) == "2.2.2.2"

    def test_real_ip(self):
        assert client_ip(_request({"X-Real-IP": "3.3.3.3"})) == "3.3.3.3"

    def test_socket_peer(self):
        assert client_ip(_request()) == "203.0.113.5"

    def test_no_client(self):
        assert client_ip(_request(client=None)) == "unknown"


class TestDeviceFingerprint:
    def test_is_stable_sha256_hex(self):
        first = device_fingerprint(_request(BROWSER))
        second = device_fingerprint(_request(BROWSER))

        assert first == second
        assert len(first) == 64
        int(first, 16)

    def test_changes_with_user_agent(self):
        other = dict(BROWSER, **{"user-agent": "curl/8.0"})

        assert device_fingerprint(_request(BROWSER)) != device_fingerprint(_request(other))

    def test_changes_with_ip(self):
        assert device_fingerprint(_request(BROWSER)) != device_fingerprint(
            _request(BROWSER, client=("198.51.100.7", 1))
        )

    def test_missing_headers_are_tolerated(self):
        assert len(device_fingerprint(_request())) == 64


class TestSessionTokens:
    """Device-bound token issue and verification."""

    def test_round_trip(self):
        request = _request(BROWSER)
        token, expires = issue_token(True, request)

        claims = verify_token(token, _request(BROWSER))

        assert claims is not None
        assert claims.is_admin is True
        assert claims.ip == "203.0.113.5"
        assert claims.device_fingerprint == device_fingerprint(request)
        assert expires - datetime.now(timezone.utc) > timedelta(hours=23)

    def test_user_token_is_not_admin(self):
        token, _ = issue_token(False, _request(BROWSER))

        assert verify_token(token, _request(BROWSER)).is_admin is False

    def test_other_device_is_rejected(self):
        token, _ = issue_token(True, _request(BROWSER))
        other = dict(BROWSER, **{"accept-language": "zh-CN"})

        assert verify_token(token, _request(other)) is None

    def test_expired_token_is_rejected(self):
        request = _request(BROWSER)
        past = datetime.now(timezone.utc) - timedelta(hours=25)
        token = jwt.encode(
            {
                "isAdmin": True,
                "deviceFingerprint": device_fingerprint(request),
                "ip": "203.0.113.5",
                "iat": past,
                "exp": past + timedelta(hours=24),
            },
            Settings.LOGIN_JWT_SECRET_KEY,
            algorithm=JWT_ALGORITHM,
        )

        assert verify_token(token, request) is None

    def test_bad_signature_is_rejected(self):
        request = _request(BROWSER)
        token = jwt.encode(
            {"isAdmin": True, "deviceFingerprint": device_fingerprint(request)},
            "some-other-secret",
            algorithm=JWT_ALGORITHM,
        )

        assert verify_token(token, request) is None

    def test_missing_fingerprint_is_rejected(self):
        token = jwt.encode({"isAdmin": True}, Settings.LOGIN_JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

        assert verify_token(token, _request(BROWSER)) is None

    def test_garbage_token(self):
        assert verify_token("not-a-jwt", _request(BROWSER)) is None
        assert verify_token("", _request(BROWSER)) is None

    def test_missing_secret(self, monkeypatch):
        token, _ = issue_token(True, _request(BROWSER))
        monkeypatch.delenv("LOGIN_JWT_SECRET_KEY")

        with pytest.raises(RuntimeError):
            issue_token(True, _request(BROWSER))
        assert verify_token(token, _request(BROWSER)) is None


class TestVerifyPassword:
    @pytest.mark.asyncio
    async def test_admin_password(self):
        service = MagicMock()

        assert await verify_password(Settings.ADMIN_PASSWORD, True, service) is True
        assert await verify_password("wrong", True, service) is False

    @pytest.mark.asyncio
    async def test_admin_password_unset(self, monkeypatch):
        monkeypatch.delenv("ADMIN_PASSWORD")

        assert await verify_password("", True, MagicMock()) is False
        assert await verify_password("anything", True, MagicMock()) is False

    @pytest.mark.asyncio
    async def test_user_password(self):
        service = MagicMock()
        service.get_login_password = AsyncMock(return_value="letmein")

        assert await verify_password("letmein", False, service) is True
        assert await verify_password("letmeout", False, service) is False

    @pytest.mark.asyncio
    async def test_user_login_disabled(self):
        service = MagicMock()
        service.get_login_password = AsyncMock(return_value=None)

        assert await verify_password("letmein", False, service) is False

    @pytest.mark.asyncio
    async def test_empty_candidate(self):
        service = MagicMock()
        service.get_login_password = AsyncMock(return_value="letmein")

        assert await verify_password("", False, service) is False
        service.get_login_password.assert_not_awaited()
