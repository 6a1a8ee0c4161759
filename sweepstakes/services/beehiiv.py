from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from sweepstakes.core.config import get_settings

logger = structlog.get_logger(__name__)
ERROR_BODY_MAX_CHARS = 500


@dataclass(frozen=True, slots=True)
class BeehiivSyncResult:
    updated: bool
    error: str | None
    subscriber_id: str | None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        parsed = response.json()
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _extract_subscriber_id(body: dict[str, Any]) -> str | None:
    data = body.get("data")
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict):
        return None
    subscriber_id = data.get("id")
    return str(subscriber_id) if subscriber_id else None


def subscriber_id_from_response(response: httpx.Response) -> str | None:
    return _extract_subscriber_id(_json_body(response))


def describe_error_response(response: httpx.Response) -> str:
    body = response.text.strip()[:ERROR_BODY_MAX_CHARS]
    return f"HTTP {response.status_code}: {body}" if body else f"HTTP {response.status_code}"


def parse_tags(raw_tags: str) -> tuple[str, ...]:
    ordered: list[str] = []
    for raw_tag in raw_tags.split(","):
        tag = raw_tag.strip()
        if tag and tag not in ordered:
            ordered.append(tag)
    return tuple(ordered)


class BeehiivClient:
    """Thin async wrapper around the BeehiiV v2 subscriptions API."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        publication_id: str,
        entries_field_name: str = "sweepstakes_entries",
        tags: tuple[str, ...] = (),
        field_update_max_attempts: int = 3,
        retry_base_delay_ms: int = 500,
        post_create_delay_ms: int = 1000,
    ) -> None:
        self._http = http_client
        self.publication_id = publication_id
        self.entries_field_name = entries_field_name
        self.tags = tags
        self.field_update_max_attempts = max(1, field_update_max_attempts)
        self.retry_base_delay_ms = max(0, retry_base_delay_ms)
        self.post_create_delay_ms = max(0, post_create_delay_ms)

    async def __aenter__(self) -> BeehiivClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _subscriptions_path(self) -> str:
        return f"/publications/{self.publication_id}/subscriptions"

    async def lookup_subscriber_id(self, email: str) -> str | None:
        response = await self._http.get(
            f"{self._subscriptions_path()}/by_email/{quote(email, safe='')}"
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return _extract_subscriber_id(_json_body(response))

    async def create_subscription(
        self,
        *,
        email: str,
        first_name: str = "",
        last_name: str = "",
        custom_fields: dict[str, str] | None = None,
        utm_source: str = "sweepstakes",
        reactivate_existing: bool = True,
    ) -> httpx.Response:
        fields = {"First Name": first_name, "Last Name": last_name}
        fields.update(custom_fields or {})
        payload = {
            "email": email,
            "reactivate_existing": reactivate_existing,
            "send_welcome_email": False,
            "double_opt_override": "off",
            "utm_source": utm_source,
            "custom_fields": [
                {"name": name, "value": value} for name, value in fields.items() if value
            ],
        }
        return await self._http.post(self._subscriptions_path(), json=payload)

    async def update_custom_field(
        self,
        *,
        subscriber_id: str,
        name: str,
        value: str,
    ) -> httpx.Response:
        return await self._http.patch(
            f"{self._subscriptions_path()}/{subscriber_id}",
            json={"custom_fields": [{"name": name, "value": value}]},
        )

    async def add_tags(self, *, subscriber_id: str, tags: tuple[str, ...]) -> bool:
        if not tags:
            return True
        try:
            response = await self._http.post(
                f"{self._subscriptions_path()}/{subscriber_id}/tags",
                json={"tags": list(tags)},
            )
        except httpx.HTTPError as exc:
            logger.warning("beehiiv_tags_failed", subscriber_id=subscriber_id, error=str(exc))
            return False
        if response.is_success:
            return True
        logger.warning(
            "beehiiv_tags_failed",
            subscriber_id=subscriber_id,
            error=describe_error_response(response),
        )
        return False

    async def _ensure_subscriber(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        referral_code: str,
    ) -> tuple[str | None, str | None]:
        subscriber_id = await self.lookup_subscriber_id(email)
        if subscriber_id is not None:
            return subscriber_id, None

        logger.info("beehiiv_subscriber_missing_creating", email=email)
        response = await self.create_subscription(
            email=email,
            first_name=first_name,
            last_name=last_name,
            custom_fields={"referral_code": referral_code},
        )
        if not response.is_success and response.status_code != 409:
            return None, f"subscriber create failed: {describe_error_response(response)}"

        subscriber_id = _extract_subscriber_id(_json_body(response))
        # Freshly created subscribers are not immediately patchable.
        await asyncio.sleep(self.post_create_delay_ms / 1000)
        if subscriber_id is None:
            subscriber_id = await self.lookup_subscriber_id(email)
        if subscriber_id is None:
            return None, "subscriber not found after create"
        return subscriber_id, None

    async def sync_entry_total(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        referral_code: str,
        total_entries: int,
    ) -> BeehiivSyncResult:
        """Pushes an entrant's total entry count into the numeric custom field.

        Looks the subscriber up by email (creating it when missing), then
        retries the field update with exponential backoff. A 404 while
        retrying refreshes the subscriber id before the next attempt. Tags
        are attached only after a successful update and never fail the sync.
        """
        subscriber_id: str | None = None
        try:
            subscriber_id, error = await self._ensure_subscriber(
                email=email,
                first_name=first_name,
                last_name=last_name,
                referral_code=referral_code,
            )
            if subscriber_id is None:
                return BeehiivSyncResult(updated=False, error=error, subscriber_id=None)

            last_error: str | None = None
            for attempt in range(self.field_update_max_attempts):
                response = await self.update_custom_field(
                    subscriber_id=subscriber_id,
                    name=self.entries_field_name,
                    value=str(total_entries),
                )
                if response.is_success:
                    last_error = None
                    break

                last_error = describe_error_response(response)
                logger.warning(
                    "beehiiv_field_update_failed",
                    subscriber_id=subscriber_id,
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
                if response.status_code == 404:
                    subscriber_id = await self.lookup_subscriber_id(email) or subscriber_id
                if attempt + 1 < self.field_update_max_attempts:
                    await asyncio.sleep(self.retry_base_delay_ms * (2**attempt) / 1000)

            if last_error is not None:
                return BeehiivSyncResult(
                    updated=False,
                    error=f"field update failed after {self.field_update_max_attempts} attempts: {last_error}",
                    subscriber_id=subscriber_id,
                )
        except httpx.HTTPError as exc:
            logger.warning("beehiiv_sync_transport_failed", email=email, error=str(exc))
            return BeehiivSyncResult(updated=False, error=str(exc), subscriber_id=subscriber_id)

        await self.add_tags(subscriber_id=subscriber_id, tags=self.tags)
        logger.info(
            "beehiiv_entry_total_synced",
            subscriber_id=subscriber_id,
            total_entries=total_entries,
        )
        return BeehiivSyncResult(updated=True, error=None, subscriber_id=subscriber_id)


def is_beehiiv_configured(*, publication_id: str | None = None) -> bool:
    settings = get_settings()
    resolved_publication_id = publication_id or getattr(settings, "beehiiv_publication_id", "")
    return bool(getattr(settings, "beehiiv_api_key", "")) and bool(resolved_publication_id)


def build_beehiiv_client(*, publication_id: str | None = None) -> BeehiivClient:
    settings = get_settings()
    http_client = httpx.AsyncClient(
        base_url=settings.beehiiv_api_url.rstrip("/"),
        timeout=settings.beehiiv_timeout_seconds,
        headers={
            "Authorization": f"Bearer {settings.beehiiv_api_key}",
            "Content-Type": "application/json",
        },
    )
    return BeehiivClient(
        http_client=http_client,
        publication_id=publication_id or settings.beehiiv_publication_id,
        entries_field_name=settings.beehiiv_entries_field_name,
        tags=parse_tags(settings.beehiiv_tags),
        field_update_max_attempts=settings.beehiiv_field_update_max_attempts,
        retry_base_delay_ms=settings.beehiiv_retry_base_delay_ms,
        post_create_delay_ms=settings.beehiiv_post_create_delay_ms,
    )
