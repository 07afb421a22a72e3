"""
Credential session: the access token this server holds on the user's behalf.

The MCP client never sees or sends the auth service's token. Instead:

1. A sign-in tool call succeeds and the service returns a token somewhere in
   its response body. `absorb()` finds it and stores it.
2. Later tool calls get it injected as "Authorization: Bearer <token>".
3. A sign-out call, a detected expiry or a 401 from the service clears it.

The token is mirrored to a small JSON record on disk so a restarted server
(MCP clients restart stdio servers freely) is still signed in:

    {"accessToken": "eyJhbGci...", "expiresAt": 1738800000.0, "savedAt": 1738796400.0}

`expiresAt` is null for tokens with unknown lifetime; those stay valid until
something clears them.

Response shapes differ between deployments of the auth service, so the token
and its lifetime are looked up through ordered lists of candidate field paths
(TOKEN_FIELD_PATHS, EXPIRY_FIELD_PATHS). Supporting a new shape means adding
a path to those lists.
"""

import asyncio
import contextlib
import enum
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import jwt
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("auth-mcp.auth")

# Tried in order; the first non-empty string wins.
TOKEN_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("accessToken",),
    ("access_token",),
    ("token",),
    ("data", "accessToken"),
    ("data", "access_token"),
    ("data", "token"),
    ("data", "session", "accessToken"),
    ("data", "session", "access_token"),
)

# Token lifetime in seconds, tried in order.
EXPIRY_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("expiresIn",),
    ("expires_in",),
    ("data", "expiresIn"),
    ("data", "expires_in"),
    ("data", "session", "expiresIn"),
    ("data", "session", "expires_in"),
)


def find_field(payload: Any, paths: tuple[tuple[str, ...], ...]) -> Any:
    """
    Return the first non-empty value found at one of `paths` in `payload`.

    Missing keys, non-mapping intermediates, None and "" all count as "not
    found" and move on to the next path.
    """
    for path in paths:
        node = payload
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if node is not None and node != "":
            return node
    return None


def _as_seconds(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        try:
            seconds = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return seconds if seconds > 0 else None


def jwt_expiry(token: str) -> float | None:
    """
    Read the `exp` claim of a JWT without verifying it.

    The server is not the token's audience and has no key to verify it; the
    claim is only used to know when to stop sending the token. Returns None
    for opaque (non-JWT) tokens and tokens without a numeric `exp`.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return float(exp)
    return None


class SessionRecord(BaseModel):
    """The durable session record, stored as JSON."""

    accessToken: str
    expiresAt: float | None = None
    savedAt: float


class TokenStore(Protocol):
    """Durable storage for one session record."""

    def load_bytes(self) -> bytes | None: ...
    def save_bytes(self, data: bytes) -> None: ...
    def delete(self) -> None: ...


class FileTokenStore:
    """
    Stores the session record as a single file.

    Writes go through a temporary file and os.replace, so a crash mid-write
    leaves either the old record or the new one. The file is created with
    mode 0600 where the platform supports it.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def load_bytes(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def save_bytes(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, self.path)

    def delete(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()


class SessionState(str, enum.Enum):
    NO_SESSION = "no-session"
    EXPIRED = "expired"
    VALID = "valid"


@dataclass(frozen=True)
class SessionStatus:
    """
    Snapshot of the session.

    Attributes:
        state: no-session, expired or valid
        remaining_seconds: Seconds until expiry; only set for a valid session
                           with a known expiry
    """

    state: SessionState
    remaining_seconds: int | None = None

    @property
    def is_valid(self) -> bool:
        return self.state is SessionState.VALID


class CredentialSession:
    """
    The process's single authentication session.

    `load`, `absorb` and `clear` change state and the durable record; they
    all run under one asyncio lock so two racing calls (say a logout and a
    401 on a concurrent request) cannot interleave their disk writes.
    `status` and `bearer_token` only read.
    """

    def __init__(self, store: TokenStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._lock = asyncio.Lock()
        self.access_token: str | None = None
        self.expires_at: float | None = None

    # --- reads ---

    def status(self) -> SessionStatus:
        if not self.access_token:
            return SessionStatus(SessionState.NO_SESSION)
        if self.expires_at is None:
            return SessionStatus(SessionState.VALID)
        remaining = self.expires_at - self._clock()
        if remaining <= 0:
            return SessionStatus(SessionState.EXPIRED)
        return SessionStatus(SessionState.VALID, remaining_seconds=int(remaining))

    def bearer_token(self) -> str | None:
        """The token to send upstream, or None when there is no valid session."""
        return self.access_token if self.status().is_valid else None

    # --- mutations ---

    async def load(self) -> SessionStatus:
        """
        Restore the session from the durable record.

        A missing record leaves the session empty. An unreadable, malformed,
        tokenless or expired record is deleted. Never raises.
        """
        async with self._lock:
            self._forget()
            try:
                raw = self._store.load_bytes()
            except OSError as exc:
                logger.warning("Session record unreadable, discarding", extra={"auth_data": {"error": str(exc)}})
                self._delete_record()
                return self.status()

            if raw is None:
                return self.status()

            try:
                record = SessionRecord.model_validate_json(raw)
            except ValidationError:
                logger.warning("Session record malformed, discarding")
                self._delete_record()
                return self.status()

            if record.expiresAt is not None and record.expiresAt <= self._clock():
                logger.info("Stored session expired, discarding")
                self._delete_record()
                return self.status()

            if not record.accessToken:
                logger.warning("Session record holds no token, discarding")
                self._delete_record()
                return self.status()

            self.access_token = record.accessToken
            self.expires_at = record.expiresAt
            status = self.status()
            logger.info(
                "Session restored",
                extra={"auth_data": {"state": status.state.value, "remaining_seconds": status.remaining_seconds}},
            )
            return status

    async def absorb(self, response_body: Any) -> bool:
        """
        Take a new token from a sign-in response.

        Returns False, leaving the current session untouched, when none of
        the candidate paths holds a non-empty string.
        """
        token = find_field(response_body, TOKEN_FIELD_PATHS)
        if not isinstance(token, str) or not token:
            logger.warning("Sign-in response carried no access token")
            return False

        now = self._clock()
        seconds = _as_seconds(find_field(response_body, EXPIRY_FIELD_PATHS))
        expires_at = now + seconds if seconds is not None else jwt_expiry(token)

        async with self._lock:
            self.access_token = token
            self.expires_at = expires_at
            record = SessionRecord(accessToken=token, expiresAt=expires_at, savedAt=now)
            try:
                self._store.save_bytes(record.model_dump_json().encode("utf-8"))
            except OSError as exc:
                # An older record must not outlive the token that replaced it.
                logger.warning("Could not persist session", extra={"auth_data": {"error": str(exc)}})
                self._delete_record()

        logger.info(
            "Session stored",
            extra={"auth_data": {"remaining_seconds": self.status().remaining_seconds}},
        )
        return True

    async def clear(self) -> None:
        """Drop the token and delete the durable record. Idempotent."""
        async with self._lock:
            had_token = self.access_token is not None
            self._forget()
            self._delete_record()
        if had_token:
            logger.info("Session cleared")

    def _forget(self) -> None:
        self.access_token = None
        self.expires_at = None

    def _delete_record(self) -> None:
        try:
            self._store.delete()
        except OSError as exc:
            logger.warning("Could not delete session record", extra={"auth_data": {"error": str(exc)}})
