"""Signed scan credentials.

A credential is ``<base64url(JSON payload)>.<hex HMAC-SHA256 of the first segment>``.
Decoding authenticates the raw payload segment before anything inside it is
parsed, so a tampered payload is always reported as ``invalid_signature``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

_DELIMITER = "."


class CredentialType(str, Enum):
    """Type discriminator embedded in every credential payload."""

    QR_SCAN = "qr_scan"
    DEEP_LINK_SCAN = "deep_link_scan"


class CredentialError(str, Enum):
    """Why a credential was rejected."""

    INVALID_FORMAT = "invalid_format"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"


@dataclass(frozen=True)
class CredentialPayload:
    """Claims carried by a scan credential."""

    customer_id: str
    tenant_id: str
    qr_id: str | None = None
    credential_type: CredentialType | None = CredentialType.QR_SCAN
    issued_at: int | None = None
    expires_at: int | None = None
    nonce: str | None = None

    def to_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "customerId": self.customer_id,
            "tenantId": self.tenant_id,
            "type": self.credential_type.value if self.credential_type else None,
            "iat": self.issued_at,
        }
        if self.qr_id is not None:
            claims["qrId"] = self.qr_id
        if self.expires_at is not None:
            claims["exp"] = self.expires_at
        if self.nonce is not None:
            claims["nonce"] = self.nonce
        return claims


@dataclass(frozen=True)
class DecodedCredential:
    """Decode outcome: either ``valid`` with a payload or an ``error``.

    ``payload`` is also populated for ``expired`` and ``wrong_type`` results
    because those payloads were authenticated before being rejected.
    """

    valid: bool
    payload: CredentialPayload | None = None
    error: CredentialError | None = None

    @classmethod
    def failure(cls, error: CredentialError, payload: CredentialPayload | None = None) -> "DecodedCredential":
        return cls(valid=False, payload=payload, error=error)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)


def _sign(segment: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), segment, hashlib.sha256).hexdigest()


def _to_epoch(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def encode_credential(
    payload: CredentialPayload,
    secret: str,
    ttl: timedelta | None = None,
    *,
    now: datetime | None = None,
) -> str:
    """Serialize and sign ``payload``; ``ttl=None`` issues a non-expiring card."""

    if not secret:
        raise ValueError("A signing secret is required to encode credentials")

    issued_at = payload.issued_at if payload.issued_at is not None else _to_epoch(now or datetime.now(timezone.utc))
    expires_at = payload.expires_at
    if ttl is not None:
        expires_at = issued_at + int(ttl.total_seconds())

    claims = CredentialPayload(
        customer_id=str(payload.customer_id),
        tenant_id=str(payload.tenant_id),
        qr_id=payload.qr_id,
        credential_type=payload.credential_type,
        issued_at=issued_at,
        expires_at=expires_at,
        nonce=payload.nonce,
    ).to_claims()

    segment = _b64encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{segment}{_DELIMITER}{_sign(segment.encode('ascii'), secret)}"


def mint_deep_link_credential(
    customer_id: str,
    tenant_id: str,
    secret: str,
    *,
    ttl: timedelta = timedelta(minutes=3),
    qr_id: str | None = None,
    now: datetime | None = None,
) -> str:
    """Issue a short-lived, single-use credential carrying a random nonce."""

    payload = CredentialPayload(
        customer_id=customer_id,
        tenant_id=tenant_id,
        qr_id=qr_id,
        credential_type=CredentialType.DEEP_LINK_SCAN,
        nonce=secrets.token_hex(16),
    )
    return encode_credential(payload, secret, ttl, now=now)


def _payload_from_claims(claims: Mapping[str, Any]) -> CredentialPayload | None:
    customer_id = claims.get("customerId")
    tenant_id = claims.get("tenantId")
    if not isinstance(customer_id, str) or not customer_id:
        return None
    if not isinstance(tenant_id, str) or not tenant_id:
        return None

    raw_type = claims.get("type")
    try:
        credential_type = CredentialType(raw_type)
    except ValueError:
        credential_type = None

    issued_at = claims.get("iat")
    expires_at = claims.get("exp")
    if expires_at is not None and not isinstance(expires_at, (int, float)):
        return None
    qr_id = claims.get("qrId")
    nonce = claims.get("nonce")
    return CredentialPayload(
        customer_id=customer_id,
        tenant_id=tenant_id,
        qr_id=qr_id if isinstance(qr_id, str) else None,
        credential_type=credential_type,
        issued_at=int(issued_at) if isinstance(issued_at, (int, float)) else None,
        expires_at=int(expires_at) if expires_at is not None else None,
        nonce=nonce if isinstance(nonce, str) else None,
    )


def decode_credential(
    credential: object,
    secret: str,
    *,
    expected_types: Iterable[CredentialType] | None = None,
    enforce_expiry: bool = True,
    now: datetime | None = None,
) -> DecodedCredential:
    """Authenticate and parse a credential.

    ``enforce_expiry=False`` accepts expired long-lived cards; the MAC check
    is never skipped.
    """

    if not isinstance(credential, str) or credential.count(_DELIMITER) != 1:
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)
    segment, signature = credential.split(_DELIMITER)
    if not segment or not signature:
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)

    expected = _sign(segment.encode("utf-8", "surrogatepass"), secret).encode("ascii")
    if not hmac.compare_digest(expected, signature.encode("utf-8", "surrogatepass")):
        return DecodedCredential.failure(CredentialError.INVALID_SIGNATURE)

    try:
        claims = json.loads(_b64decode(segment).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)
    if not isinstance(claims, dict):
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)

    payload = _payload_from_claims(claims)
    if payload is None:
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)

    allowed = set(expected_types) if expected_types is not None else set(CredentialType)
    if payload.credential_type not in allowed:
        return DecodedCredential.failure(CredentialError.WRONG_TYPE, payload)
    if payload.credential_type is CredentialType.DEEP_LINK_SCAN and not payload.nonce:
        return DecodedCredential.failure(CredentialError.INVALID_FORMAT)

    if enforce_expiry and payload.expires_at is not None:
        current = _to_epoch(now or datetime.now(timezone.utc))
        if current > payload.expires_at:
            return DecodedCredential.failure(CredentialError.EXPIRED, payload)

    return DecodedCredential(valid=True, payload=payload)


__all__ = [
    "CredentialError",
    "CredentialPayload",
    "CredentialType",
    "DecodedCredential",
    "decode_credential",
    "encode_credential",
    "mint_deep_link_credential",
]
