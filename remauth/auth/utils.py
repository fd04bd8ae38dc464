"""
Authentication utilities for AD Auth token verification and public key caching.

This module handles:
- Fetching and caching the identity provider's PEM public key
- Verifying AD Auth tokens (RS256 signature, expiry, required claims)
"""

import hashlib
import logging
from typing import Optional

import httpx
import jwt
from pydantic import ValidationError

from remauth.auth.errors import BadSignature, ConfigMissing, Expired, Malformed, UpstreamUnavailable
from remauth.models import IdentityAssertion
from remauth.store import KeyValueStore

logger = logging.getLogger(__name__)

ALGORITHMS = ["RS256"]

REQUIRED_CLAIMS = ["exp", "aud", "iss", "nameid", "name", "email", "groups"]


# =============================================================================
# Public Key Cache
# =============================================================================

def public_key_cache_key(url: str) -> str:
    """Cache slot for the key served at ``url``; changing the URL changes the slot."""
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    return f"adauth:publickey:{digest}"


class PublicKeyCache:
    """
    Identity provider public key, cached in the shared store.

    A miss fetches the key from ``url``; the result is stored for
    ``ttl_seconds``. Concurrent misses each fetch and the last write wins,
    which is harmless since every fetch returns the same key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        url: Optional[str],
        ttl_seconds: int = 60,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.store = store
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.client = client
        self.timeout = timeout

    async def get_public_key(self) -> str:
        """
        Return the PEM public key, fetching it on a cache miss.

        Raises:
            ConfigMissing: If no public key URL is configured
            UpstreamUnavailable: If the key cannot be fetched or decoded
        """
        if not self.url:
            raise ConfigMissing("AD Auth public key URL is not set")

        cache_key = public_key_cache_key(self.url)
        cached = await self.store.get(cache_key)
        if cached is not None:
            return cached

        public_key = await self._fetch()
        await self.store.set(cache_key, public_key, self.ttl_seconds)
        logger.info(
            "Cached AD Auth public key",
            extra={"ttl_seconds": self.ttl_seconds},
        )
        return public_key

    async def _fetch(self) -> str:
        try:
            if self.client is not None:
                response = await self.client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Public key fetch failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailable("public key fetch failed") from e

        try:
            public_key = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error("Public key response is not UTF-8 text")
            raise UpstreamUnavailable("public key is not UTF-8 text") from e

        if not public_key.strip():
            logger.error("Public key response is empty")
            raise UpstreamUnavailable("public key response is empty")

        return public_key


# =============================================================================
# Token Verification
# =============================================================================

def verify_assertion(raw_token: str, public_key_pem: str) -> IdentityAssertion:
    """
    Verify an AD Auth token and return its claims.

    The audience claim carries the CSRF-Auth request id; it is returned as
    ``request_id`` for the caller to bind against the CSRF cookie, not checked
    here.

    Raises:
        Expired: If ``exp`` is in the past
        BadSignature: If the signature does not match or the key is unusable
        Malformed: If the token or its claims cannot be decoded
    """
    try:
        claims = jwt.decode(
            raw_token,
            public_key_pem,
            algorithms=ALGORITHMS,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": False,
                "require": REQUIRED_CLAIMS,
            },
        )
    except jwt.ExpiredSignatureError as e:
        raise Expired("token has expired") from e
    except jwt.InvalidSignatureError as e:
        raise BadSignature("signature verification failed") from e
    except (jwt.InvalidKeyError, ValueError) as e:
        # PEM that PyJWT/cryptography cannot load
        raise BadSignature("public key is unusable") from e
    except jwt.InvalidTokenError as e:
        raise Malformed(str(e)) from e

    try:
        return IdentityAssertion.model_validate(claims)
    except ValidationError as e:
        raise Malformed(f"invalid claims: {e.error_count()} error(s)") from e
