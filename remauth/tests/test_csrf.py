"""
Tests for CSRF-Auth token issue and single-use consumption.
"""

import asyncio
import base64

import pytest

from remauth.auth.csrf import CSRFTokenStore, csrf_key


@pytest.mark.asyncio
async def test_issue_stores_marker(store):
    token = await CSRFTokenStore(store).issue(60)

    assert len(base64.b64decode(token)) == 16
    assert await store.get(csrf_key(token)) == "true"


@pytest.mark.asyncio
async def test_tokens_are_unique(store):
    csrf = CSRFTokenStore(store)

    tokens = {await csrf.issue(60) for _ in range(50)}

    assert len(tokens) == 50


@pytest.mark.asyncio
async def test_validate_and_consume_is_single_use(store):
    csrf = CSRFTokenStore(store)
    token = await csrf.issue(60)

    assert await csrf.validate_and_consume(token) is True
    assert csrf_key(token) not in store
    assert await csrf.validate_and_consume(token) is False


@pytest.mark.asyncio
async def test_expired_token_invalid(store, clock):
    csrf = CSRFTokenStore(store)
    token = await csrf.issue(60)

    clock.advance(60)

    assert await csrf.validate_and_consume(token) is False


@pytest.mark.asyncio
async def test_unknown_and_empty_tokens_invalid(store):
    csrf = CSRFTokenStore(store)

    assert await csrf.validate_and_consume("abc123==") is False
    assert await csrf.validate_and_consume("") is False


@pytest.mark.asyncio
async def test_racing_consumers_only_one_wins(store):
    csrf = CSRFTokenStore(store)
    token = await csrf.issue(60)

    results = await asyncio.gather(*(csrf.validate_and_consume(token) for _ in range(10)))

    assert results.count(True) == 1
