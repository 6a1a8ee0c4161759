from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from sweepstakes.services import beehiiv
from sweepstakes.services.beehiiv import BeehiivClient, describe_error_response, parse_tags

BASE_PATH = "/v2/publications/pub_1/subscriptions"


def _client(handler, *, tags: tuple[str, ...] = ("sweeps",), max_attempts: int = 3) -> BeehiivClient:
    return BeehiivClient(
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="https://beehiiv.test/v2",
        ),
        publication_id="pub_1",
        entries_field_name="sweepstakes_entries",
        tags=tags,
        field_update_max_attempts=max_attempts,
        retry_base_delay_ms=0,
        post_create_delay_ms=0,
    )


async def _sync(client: BeehiivClient, *, total_entries: int = 4):
    async with client:
        return await client.sync_entry_total(
            email="ana@example.com",
            first_name="Ana",
            last_name="Lopez",
            referral_code="ABCD2345",
            total_entries=total_entries,
        )


def test_parse_tags_dedupes_and_trims() -> None:
    assert parse_tags(" sweeps, fps,,sweeps ") == ("sweeps", "fps")


def test_describe_error_response_truncates_body() -> None:
    response = httpx.Response(400, text="x" * 600)
    assert describe_error_response(response) == "HTTP 400: " + "x" * 500
    assert describe_error_response(httpx.Response(502)) == "HTTP 502"


@pytest.mark.asyncio
async def test_sync_updates_existing_subscriber_and_tags() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "GET":
            return httpx.Response(200, json={"data": {"id": "sub_1"}})
        if request.method == "PATCH":
            assert json.loads(request.content) == {
                "custom_fields": [{"name": "sweepstakes_entries", "value": "4"}]
            }
            return httpx.Response(200, json={"data": {"id": "sub_1"}})
        return httpx.Response(200, json={})

    result = await _sync(_client(handler))

    assert result.updated is True
    assert result.subscriber_id == "sub_1"
    assert seen == [
        ("GET", f"{BASE_PATH}/by_email/ana%40example.com"),
        ("PATCH", f"{BASE_PATH}/sub_1"),
        ("POST", f"{BASE_PATH}/sub_1/tags"),
    ]


@pytest.mark.asyncio
async def test_sync_creates_missing_subscriber_first() -> None:
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.method == "GET":
            return httpx.Response(404)
        if request.method == "POST" and request.url.path == BASE_PATH:
            return httpx.Response(201, json={"data": {"id": "sub_new"}})
        return httpx.Response(200, json={})

    result = await _sync(_client(handler, tags=()))

    assert result.updated is True
    assert result.subscriber_id == "sub_new"
    assert methods == ["GET", "POST", "PATCH"]


@pytest.mark.asyncio
async def test_field_update_retries_and_refreshes_id_after_404() -> None:
    patched_paths: list[str] = []
    lookups = iter(["sub_old", "sub_fresh"])

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"data": {"id": next(lookups)}})
        if request.method == "PATCH":
            patched_paths.append(request.url.path)
            if request.url.path.endswith("sub_old"):
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json={})
        return httpx.Response(200, json={})

    result = await _sync(_client(handler, tags=()))

    assert result.updated is True
    assert patched_paths == [f"{BASE_PATH}/sub_old", f"{BASE_PATH}/sub_fresh"]


@pytest.mark.asyncio
async def test_field_update_gives_up_after_max_attempts() -> None:
    patch_count = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal patch_count
        if request.method == "GET":
            return httpx.Response(200, json={"data": {"id": "sub_1"}})
        patch_count += 1
        return httpx.Response(500, text="busy")

    result = await _sync(_client(handler, max_attempts=2))

    assert patch_count == 2
    assert result.updated is False
    assert result.error == "field update failed after 2 attempts: HTTP 500: busy"


@pytest.mark.asyncio
async def test_tag_failure_does_not_fail_sync() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tags"):
            return httpx.Response(500, text="tags down")
        return httpx.Response(200, json={"data": {"id": "sub_1"}})

    result = await _sync(_client(handler))

    assert result.updated is True


@pytest.mark.asyncio
async def test_transport_error_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await _sync(_client(handler))

    assert result.updated is False
    assert result.error == "timed out"


def test_is_beehiiv_configured_needs_key_and_publication(monkeypatch) -> None:
    monkeypatch.setattr(
        beehiiv,
        "get_settings",
        lambda: SimpleNamespace(beehiiv_api_key="key", beehiiv_publication_id=""),
    )
    assert beehiiv.is_beehiiv_configured() is False
    assert beehiiv.is_beehiiv_configured(publication_id="pub_1") is True
