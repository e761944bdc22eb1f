"""Signed, time-limited photo URLs and role-based photo permissions.

Tokens are base64url JSON: the signed payload plus an HMAC-SHA256 signature
computed with ``photo_access_secret`` over the canonical (sorted-key) JSON of
the payload.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from urllib.parse import quote

from coliving_platform.app.config import get_settings
from coliving_platform.domain.enums import UserRole
from coliving_platform.infra.blob_storage import PUBLIC_PREFIX

logger = logging.getLogger(__name__)

PHOTO_OPERATIONS = {"view", "download", "delete", "edit"}

ROLE_PERMISSIONS: dict[str, set[str]] = {
    UserRole.PROPERTY_OWNER.value: {"view", "download", "delete", "edit"},
    UserRole.PROPERTY_MANAGER.value: {"view", "download", "edit"},
    UserRole.TENANT.value: {"view", "download"},
    "viewer": {"view", "download"},
}


def _sign(payload: dict) -> str:
    message = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
    return hmac.new(get_settings().photo_access_secret.encode(), message, hashlib.sha256).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(token: str) -> bytes:
    return base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))


def generate_secure_photo_url(
    photo_url: str,
    property_id: str,
    expires_in: int | None = None,
    operations: list[str] | None = None,
    ip: str | None = None,
) -> dict:
    """Returns {url, token, expires_at}; expires_at is a unix timestamp."""
    settings = get_settings()
    if expires_in is None:
        expires_in = settings.photo_url_ttl_seconds
    expires_at = int(time.time()) + expires_in
    payload = {
        "url": photo_url,
        "property_id": property_id,
        "expires_at": expires_at,
        "operations": sorted(operations or ["view"]),
        "nonce": secrets.token_hex(16),
    }
    if ip:
        payload["ip"] = ip

    token = _b64encode(json.dumps({**payload, "signature": _sign(payload)}).encode())
    url = f"{settings.app_url.rstrip('/')}/api/photos/secure/{quote(token)}"
    return {"url": url, "token": token, "expires_at": expires_at}


def validate_secure_photo_token(token: str, request_ip: str | None = None) -> dict:
    """Check expiry, IP restriction and signature.

    Returns {valid, photo_url, property_id, operations, expired, error}.
    """
    result = {
        "valid": False,
        "photo_url": None,
        "property_id": None,
        "operations": [],
        "expired": False,
        "error": None,
    }
    try:
        decoded = json.loads(_b64decode(token))
        signature = decoded.pop("signature")
        expires_at = int(decoded["expires_at"])
    except (binascii.Error, ValueError, OverflowError, KeyError, TypeError, AttributeError) as e:
        result["error"] = f"Token validation failed: {e}"
        return result

    if time.time() > expires_at:
        result.update(expired=True, error="Token expired")
        return result

    restricted_ip = decoded.get("ip")
    if restricted_ip and restricted_ip != request_ip:
        result["error"] = "IP address mismatch"
        return result

    if not isinstance(signature, str) or not hmac.compare_digest(signature, _sign(decoded)):
        logger.warning("Rejected photo token with invalid signature")
        result["error"] = "Invalid signature"
        return result

    result.update(
        valid=True,
        photo_url=decoded.get("url"),
        property_id=decoded.get("property_id"),
        operations=decoded.get("operations", []),
    )
    return result


def is_stored_photo_url(url: object) -> bool:
    """Whether ``url`` is a same-site path under the uploads mount."""
    if not isinstance(url, str) or not url.startswith(PUBLIC_PREFIX + "/"):
        return False
    return "//" not in url and "\\" not in url and ".." not in url


def check_photo_permission(role: str, operation: str) -> dict:
    """Whether a role may perform an operation on property photos."""
    allowed = ROLE_PERMISSIONS.get(role, set())
    if operation not in allowed:
        return {"allowed": False, "reason": f"Role '{role}' not permitted to {operation} photos"}
    return {"allowed": True, "reason": None}
