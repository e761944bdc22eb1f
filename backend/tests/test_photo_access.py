"""Tests for signed photo URLs and photo permissions."""

import base64
import json
import time

import pytest

from coliving_platform.services.photo_access import (
    check_photo_permission,
    generate_secure_photo_url,
    is_stored_photo_url,
    validate_secure_photo_token,
)


def _reencode(token: str, **changes) -> str:
    decoded = json.loads(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))
    decoded.update(changes)
    return base64.urlsafe_b64encode(json.dumps(decoded).encode()).rstrip(b"=").decode()


class TestSecureUrls:
    def test_round_trip(self):
        generated = generate_secure_photo_url(
            "/uploads/receipts/p1/a.jpg", "p1", operations=["view", "download"]
        )
        assert generated["url"].endswith(f"/api/photos/secure/{generated['token']}")

        result = validate_secure_photo_token(generated["token"])
        assert result["valid"] is True
        assert result["photo_url"] == "/uploads/receipts/p1/a.jpg"
        assert result["property_id"] == "p1"
        assert result["operations"] == ["download", "view"]

    def test_default_operation_is_view(self):
        token = generate_secure_photo_url("/a.jpg", "p1")["token"]
        assert validate_secure_photo_token(token)["operations"] == ["view"]

    def test_tampered_payload(self):
        token = generate_secure_photo_url("/a.jpg", "p1")["token"]
        forged = _reencode(token, property_id="p2")
        result = validate_secure_photo_token(forged)
        assert result["valid"] is False
        assert result["error"] == "Invalid signature"

    def test_expired(self):
        token = generate_secure_photo_url("/a.jpg", "p1", expires_in=-5)["token"]
        result = validate_secure_photo_token(token)
        assert result["expired"] is True
        assert result["valid"] is False

    def test_zero_lifetime_is_not_the_default(self):
        generated = generate_secure_photo_url("/a.jpg", "p1", expires_in=0)
        assert generated["expires_at"] <= int(time.time())

    def test_infinite_expiry_is_rejected(self):
        token = generate_secure_photo_url("/a.jpg", "p1")["token"]
        result = validate_secure_photo_token(_reencode(token, expires_at=float("inf")))
        assert result["valid"] is False
        assert result["error"].startswith("Token validation failed")

    def test_ip_restriction(self):
        token = generate_secure_photo_url("/a.jpg", "p1", ip="10.0.0.1")["token"]
        assert validate_secure_photo_token(token, request_ip="10.0.0.1")["valid"] is True
        assert validate_secure_photo_token(token, request_ip="10.0.0.2")["error"] == "IP address mismatch"

    @pytest.mark.parametrize("token", ["garbage", "", "e30"])
    def test_malformed(self, token):
        result = validate_secure_photo_token(token)
        assert result["valid"] is False
        assert result["error"].startswith("Token validation failed")


@pytest.mark.parametrize("url,stored", [
    ("/uploads/receipts/p1/a.jpg", True),
    ("https://evil.example/phish", False),
    ("//evil.example/phish", False),
    ("/uploads//evil.example", False),
    ("/uploads/../app/config.py", False),
    ("/api/auth/me", False),
    (None, False),
])
def test_stored_photo_url(url, stored):
    assert is_stored_photo_url(url) is stored


class TestPermissions:
    @pytest.mark.parametrize("role,operation,allowed", [
        ("property_owner", "delete", True),
        ("property_manager", "edit", True),
        ("property_manager", "delete", False),
        ("tenant", "view", True),
        ("tenant", "edit", False),
        ("stranger", "view", False),
    ])
    def test_matrix(self, role, operation, allowed):
        assert check_photo_permission(role, operation)["allowed"] is allowed

    def test_reason(self):
        assert check_photo_permission("tenant", "delete")["reason"] == "Role 'tenant' not permitted to delete photos"
