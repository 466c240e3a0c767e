# =============================================================================
# Auth Service — Token Generation, Hashing & Resolution
# =============================================================================
#
# Application tokens are 32-byte random secrets. Only their SHA-256 digest is
# stored; resolution hashes the presented token and looks the digest up
# through a unique index.
#
# DESIGN DECISION: SHA-256 hashing (not bcrypt). Tokens carry 256 bits of
# entropy, so a fast deterministic hash is sufficient and keeps the
# per-request lookup a single indexed equality match.
#
# DESIGN DECISION: Unknown and revoked tokens share one code path. The store
# lookup filters on is_active, so both cases run the same hash + query and
# raise the same InvalidTokenError.
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import TYPE_CHECKING

from loghog.errors import InvalidTokenError

if TYPE_CHECKING:
    from loghog.services.store import LogStore

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "lh_"


def generate_token() -> tuple[str, str, str]:
    """
    Generate a new application token.

    Returns:
        (raw_token, key_prefix, key_hash):
        - raw_token: Full token to return to the caller (only visible once)
        - key_prefix: First 8 chars for identification in logs/admin
        - key_hash: SHA-256 hex digest for storage in the database
    """
    raw_token = f"{TOKEN_PREFIX}{secrets.token_hex(32)}"
    key_prefix = raw_token[:8]
    key_hash = hash_token(raw_token)
    return raw_token, key_prefix, key_hash


def hash_token(raw_token: str) -> str:
    """Hash a token using SHA-256. Returns 64-char hex digest."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


class TokenResolver:
    """Maps a bearer token to the id of the application that owns it."""

    def __init__(self, store: LogStore) -> None:
        self._store = store

    async def resolve(self, token: str | None) -> str:
        """
        Resolve a raw token to its application id.

        Read-only. Raises InvalidTokenError when the token is missing,
        unknown, or revoked.
        """
        if not token:
            raise InvalidTokenError()

        app_id = await self._store.find_app_id_for_token(hash_token(token))
        if app_id is None:
            logger.info("Rejected token with prefix '%s'", token[:8])
            raise InvalidTokenError()
        return app_id
