"""HMAC-signed, self-contained action tokens for emailed links.

Wire format::

    base64url(JSON payload) "." base64url(HMAC-SHA256(payload segment))

Both segments are unpadded base64url.  The signature covers the encoded
payload segment exactly as transmitted, so any change to either segment
fails verification.

A verified token only proves that *we* minted the payload and that it has
not expired.  Whether the referenced selection is still actionable is
decided by :class:`guide_match.matching.arbiter.SelectionArbiter`.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass, replace
from typing import Literal

import structlog

from guide_match.clock import Clock, SystemClock, epoch_ms
from guide_match.config.settings import Settings
from guide_match.errors import ConfigError, TokenExpired, TokenInvalid

logger = structlog.get_logger()

MIN_SECRET_LENGTH = 32
DIGEST_SIZE = hashlib.sha256().digest_size

MATCH_TOKEN_TTL_HOURS = 72
VIEW_TOKEN_TTL_HOURS = 4

Action = Literal["accept", "decline"]
ACTIONS: frozenset[str] = frozenset({"accept", "decline"})


@dataclass(frozen=True)
class MatchTokenPayload:
    """Authorizes one accept/decline action on one selection."""

    request_id: str
    student_id: str
    selection_id: str
    action: Action
    exp: int  # epoch milliseconds

    def to_wire(self) -> dict:
        return {
            "requestId": self.request_id,
            "studentId": self.student_id,
            "selectionId": self.selection_id,
            "action": self.action,
            "exp": self.exp,
        }


@dataclass(frozen=True)
class ViewTokenPayload:
    """Read-only access to one request's status."""

    request_id: str
    student_id: str
    exp: int  # epoch milliseconds

    def to_wire(self) -> dict:
        return {
            "requestId": self.request_id,
            "studentId": self.student_id,
            "exp": self.exp,
        }


_MATCH_KEYS = frozenset({"requestId", "studentId", "selectionId", "action", "exp"})
_VIEW_KEYS = frozenset({"requestId", "studentId", "exp"})


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    """Strict unpadded base64url decode.

    Rejects characters outside the url-safe alphabet and non-canonical
    encodings (stray low bits in the final character), so that exactly one
    string decodes to a given byte sequence.
    """
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (UnicodeEncodeError, binascii.Error, ValueError) as exc:
        raise TokenInvalid("segment is not base64url") from exc
    if _b64encode(raw) != segment:
        raise TokenInvalid("segment is not canonical base64url")
    return raw


def _non_empty_str(value: object) -> bool:
    return isinstance(value, str) and value != ""


def _is_epoch_ms(value: object) -> bool:
    # bool is an int subclass; JSON true/false must not pass as a timestamp
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_match_payload(data: object) -> MatchTokenPayload:
    if not isinstance(data, dict) or set(data) != _MATCH_KEYS:
        raise TokenInvalid("match payload has unexpected shape")
    if not (
        _non_empty_str(data["requestId"])
        and _non_empty_str(data["studentId"])
        and _non_empty_str(data["selectionId"])
        and data["action"] in ACTIONS
        and _is_epoch_ms(data["exp"])
    ):
        raise TokenInvalid("match payload has mistyped fields")
    return MatchTokenPayload(
        request_id=data["requestId"],
        student_id=data["studentId"],
        selection_id=data["selectionId"],
        action=data["action"],
        exp=data["exp"],
    )


def _parse_view_payload(data: object) -> ViewTokenPayload:
    if not isinstance(data, dict) or set(data) != _VIEW_KEYS:
        raise TokenInvalid("view payload has unexpected shape")
    if not (
        _non_empty_str(data["requestId"])
        and _non_empty_str(data["studentId"])
        and _is_epoch_ms(data["exp"])
    ):
        raise TokenInvalid("view payload has mistyped fields")
    return ViewTokenPayload(
        request_id=data["requestId"],
        student_id=data["studentId"],
        exp=data["exp"],
    )


class TokenCodec:
    """Mints and verifies signed tokens. Holds no state beyond the key."""

    def __init__(self, secret: str | None, clock: Clock | None = None) -> None:
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigError(
                f"Token secret must be at least {MIN_SECRET_LENGTH} characters"
            )
        self._key = secret.encode("utf-8")
        self.clock = clock or SystemClock()

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> TokenCodec:
        secret = settings.token_secret.get_secret_value() if settings.token_secret else None
        return cls(secret, clock=clock)

    def _sign(self, payload_segment: str) -> bytes:
        return hmac.new(self._key, payload_segment.encode("ascii"), hashlib.sha256).digest()

    def _expiry(self, ttl_hours: float) -> int:
        return epoch_ms(self.clock.now()) + int(ttl_hours * 60 * 60 * 1000)

    def mint(
        self,
        payload: MatchTokenPayload | ViewTokenPayload,
        ttl_hours: float | None = None,
    ) -> str:
        """Serialize, encode and sign *payload*.

        With *ttl_hours* the expiry is reset to now plus the TTL; otherwise
        ``payload.exp`` is used as-is.
        """
        if ttl_hours is not None:
            payload = replace(payload, exp=self._expiry(ttl_hours))
        body = json.dumps(payload.to_wire(), separators=(",", ":"), sort_keys=True)
        payload_segment = _b64encode(body.encode("utf-8"))
        return f"{payload_segment}.{_b64encode(self._sign(payload_segment))}"

    def mint_match_token(
        self,
        request_id: str,
        student_id: str,
        selection_id: str,
        action: Action,
        ttl_hours: float = MATCH_TOKEN_TTL_HOURS,
    ) -> str:
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action!r}")
        return self.mint(
            MatchTokenPayload(
                request_id=request_id,
                student_id=student_id,
                selection_id=selection_id,
                action=action,
                exp=0,
            ),
            ttl_hours,
        )

    def mint_view_token(
        self,
        request_id: str,
        student_id: str,
        ttl_hours: float = VIEW_TOKEN_TTL_HOURS,
    ) -> str:
        return self.mint(
            ViewTokenPayload(
                request_id=request_id,
                student_id=student_id,
                exp=0,
            ),
            ttl_hours,
        )

    def _verified_body(self, token: object) -> object:
        """Check structure and signature, then return the parsed JSON body."""
        if not isinstance(token, str):
            raise TokenInvalid("token is not a string")
        parts = token.split(".")
        if len(parts) != 2 or not all(parts):
            raise TokenInvalid("token does not have two segments")
        payload_segment, signature_segment = parts

        supplied = _b64decode(signature_segment)
        if len(supplied) != DIGEST_SIZE:
            raise TokenInvalid("signature has wrong length")
        try:
            expected = self._sign(payload_segment)
        except UnicodeEncodeError as exc:
            raise TokenInvalid("payload segment is not ascii") from exc
        if not hmac.compare_digest(expected, supplied):
            raise TokenInvalid("signature mismatch")

        try:
            return json.loads(_b64decode(payload_segment).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TokenInvalid("payload is not JSON") from exc

    def _check_expiry(self, exp: int) -> None:
        if exp <= epoch_ms(self.clock.now()):
            raise TokenExpired("token expired")

    def verify(self, token: object) -> MatchTokenPayload:
        """Return the accept/decline payload or raise TokenInvalid / TokenExpired."""
        try:
            payload = _parse_match_payload(self._verified_body(token))
            self._check_expiry(payload.exp)
        except (TokenInvalid, TokenExpired) as exc:
            logger.warning("token_rejected", kind="match", reason=str(exc))
            raise
        return payload

    def verify_view(self, token: object) -> ViewTokenPayload:
        """Return the view payload or raise TokenInvalid / TokenExpired."""
        try:
            payload = _parse_view_payload(self._verified_body(token))
            self._check_expiry(payload.exp)
        except (TokenInvalid, TokenExpired) as exc:
            logger.warning("token_rejected", kind="view", reason=str(exc))
            raise
        return payload
