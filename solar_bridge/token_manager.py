"""Bearer token lifecycle for the Solar Analytics API."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .models import Token

logger = logging.getLogger(__name__)

# RFC 3339 allows nanosecond fractions; datetime only keeps microseconds
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class ClockSkewError(ValueError):
    """Token expiry timestamp could not be parsed."""
    pass


def parse_expiry(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Raises:
        ClockSkewError: if the value is empty, malformed or has no offset
    """
    if not value:
        raise ClockSkewError("empty expiry timestamp")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ClockSkewError(f"invalid expiry timestamp {value!r}: {e}") from e

    if parsed.tzinfo is None:
        raise ClockSkewError(f"expiry timestamp {value!r} has no UTC offset")

    return parsed.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Owns the current bearer token and refreshes it when it expires.

    `issue_token` performs the authenticated token request and returns a
    Token whose `expires_at` is unset; the manager parses the expiry and
    installs the result. Only one refresh runs at a time.
    """

    def __init__(
        self,
        issue_token: Callable[[], Awaitable[Token]],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._issue_token = issue_token
        self._clock = clock
        self._token: Optional[Token] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[Token]:
        """The cached token, valid or not."""
        return self._token

    @property
    def is_valid(self) -> bool:
        return self._token is not None and self._token.is_valid(self._clock())

    async def ensure_valid(self) -> Token:
        """Return a usable token, requesting a new one if needed.

        Raises whatever the token request raises; the cached token is kept
        as-is on failure.
        """
        async with self._lock:
            # A concurrent caller may have refreshed while we waited
            if self._token is not None and self._token.is_valid(self._clock()):
                return self._token

            issued = await self._issue_token()

            try:
                expires_at = parse_expiry(issued.expires)
            except ClockSkewError as e:
                logger.warning(f"Token expiry unknown, will refresh on next use: {e}")
                expires_at = None

            self._token = issued.model_copy(update={"expires_at": expires_at})
            logger.info(f"Received new token (duration={issued.duration}s, expires={issued.expires})")
            return self._token

    def invalidate(self):
        """Forget the cached token so the next call requests a new one."""
        if self._token is not None:
            logger.debug("Invalidating cached token")
        self._token = None
