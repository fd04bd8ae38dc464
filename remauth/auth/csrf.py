"""
CSRF-Auth token storage.

A token is issued per login attempt, handed to the identity provider as
``requestID`` and to the browser as a cookie. It is valid while its marker
exists in the shared store and is consumed on first successful use.
"""

import base64
import json
import logging
import secrets

from remauth.store import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 16

_MARKER = json.dumps(True)


def csrf_key(token: str) -> str:
    return f"csrf:{token}"


class CSRFTokenStore:
    """Issues and single-use-consumes CSRF-Auth tokens."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def issue(self, ttl_seconds: int) -> str:
        token = base64.b64encode(secrets.token_bytes(TOKEN_BYTES)).decode("ascii")
        await self.store.set(csrf_key(token), _MARKER, ttl_seconds)
        logger.debug("Issued CSRF-Auth token", extra={"ttl_seconds": ttl_seconds})
        return token

    async def validate_and_consume(self, token: str) -> bool:
        """
        Consume ``token`` if it is live.

        Returns:
            True if the marker existed and was removed by this call, False if
            the token is empty, unknown, expired or already consumed.
        """
        if not token:
            return False
        marker = await self.store.pop(csrf_key(token))
        if marker is None:
            logger.warning("CSRF-Auth token not found or already used")
            return False
        return True
