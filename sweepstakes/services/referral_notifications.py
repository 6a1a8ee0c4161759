from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog

from sweepstakes.core.config import get_settings

logger = structlog.get_logger(__name__)
PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_]+)\s*\}\}")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True, slots=True)
class ReferralEmailTemplate:
    subject: str
    heading: str
    referral_message: str
    cta_text: str
    footer_message: str
    prize_name: str
    prize_amount: str


@dataclass(frozen=True, slots=True)
class NotificationResult:
    sent: bool
    error: str | None
    message_id: str | None = None


DEFAULT_TEMPLATE = ReferralEmailTemplate(
    subject="Congratulations! You earned a Sweepstakes entry!",
    heading="You just earned an extra Sweepstakes entry!",
    referral_message=(
        "Great news! One of your referrals just signed up, and you now have "
        "{{totalEntries}} entries in the {{prize_amount}} {{prize_name}} Sweepstakes!"
    ),
    cta_text="Share your link",
    footer_message=(
        "Remember, every friend who signs up through your link gives you another entry "
        "in the sweepstakes!"
    ),
    prize_name="Classroom Sweepstakes",
    prize_amount="$1,000",
)
TEMPLATE_FIELDS = tuple(DEFAULT_TEMPLATE.__dataclass_fields__)


def _parse_template_overrides(raw_template: str) -> dict[str, str]:
    if not raw_template:
        return {}

    try:
        parsed = json.loads(raw_template)
    except json.JSONDecodeError:
        logger.warning("referral_email_template_parse_failed")
        return {}

    if not isinstance(parsed, dict):
        logger.warning("referral_email_template_invalid_shape")
        return {}

    return {
        field: value.strip()
        for field, value in parsed.items()
        if field in TEMPLATE_FIELDS and isinstance(value, str) and value.strip()
    }


def resolve_template(raw_template: str = "") -> ReferralEmailTemplate:
    overrides = _parse_template_overrides(raw_template)
    return replace(DEFAULT_TEMPLATE, **overrides) if overrides else DEFAULT_TEMPLATE


def build_referral_link(*, base_url: str, referral_code: str) -> str:
    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query) if key != "sub1"]
    query.append(("sub1", referral_code))
    return urlunsplit(parts._replace(query=urlencode(query)))


def render_placeholders(text: str, values: dict[str, str]) -> str:
    """Replaces ``{{name}}`` placeholders; unknown names are left untouched."""

    def _substitute(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return PLACEHOLDER_RE.sub(_substitute, text)


def _placeholder_values(
    *,
    first_name: str,
    total_entries: int,
    referral_code: str,
    referral_link: str,
    template: ReferralEmailTemplate,
) -> dict[str, str]:
    values = {
        "firstName": first_name,
        "totalEntries": str(total_entries),
        "referralCode": referral_code,
        "referralLink": referral_link,
        "prize_name": template.prize_name,
        "prize_amount": template.prize_amount,
    }
    values.update(
        {
            "first_name": values["firstName"],
            "total_entries": values["totalEntries"],
            "referral_code": values["referralCode"],
            "referral_link": values["referralLink"],
            "prizeName": values["prize_name"],
            "prizeAmount": values["prize_amount"],
        }
    )
    return values


def build_referral_email(
    *,
    first_name: str,
    total_entries: int,
    referral_code: str,
    referral_link: str,
    template: ReferralEmailTemplate,
) -> tuple[str, str]:
    values = _placeholder_values(
        first_name=first_name,
        total_entries=total_entries,
        referral_code=referral_code,
        referral_link=referral_link,
        template=template,
    )
    html_values = {key: html.escape(value) for key, value in values.items()}

    subject = render_placeholders(template.subject, values)
    heading = render_placeholders(html.escape(template.heading), html_values)
    message = render_placeholders(html.escape(template.referral_message), html_values)
    cta_text = render_placeholders(html.escape(template.cta_text), html_values)
    footer = render_placeholders(html.escape(template.footer_message), html_values)
    link = html_values["referralLink"]

    body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h1>Congratulations, {html_values['firstName']}!</h1>"
        f"<h2>{heading}</h2>"
        f"<p>{message}</p>"
        "<p>Share your referral link with more friends to increase your chances of winning:</p>"
        f"<p style=\"font-family: monospace; word-break: break-all;\">{link}</p>"
        f'<p><a href="{link}">{cta_text}</a></p>'
        f"<p>{footer}</p>"
        "</div>"
    )
    return subject, body


def _missing_fields(
    *,
    email: str | None,
    first_name: str | None,
    referral_code: str | None,
    total_entries: int | None,
) -> list[str]:
    missing: list[str] = []
    if not email or not EMAIL_RE.match(email):
        missing.append("email")
    if not first_name:
        missing.append("first_name")
    if not referral_code:
        missing.append("referral_code")
    if total_entries is None:
        missing.append("total_entries")
    return missing


async def send_referral_notification(
    *,
    email: str | None,
    first_name: str | None,
    referral_code: str | None,
    total_entries: int | None,
) -> NotificationResult:
    missing = _missing_fields(
        email=email,
        first_name=first_name,
        referral_code=referral_code,
        total_entries=total_entries,
    )
    if missing:
        logger.warning("referral_notification_invalid_input", missing_fields=missing)
        return NotificationResult(sent=False, error=f"missing required fields: {', '.join(missing)}")

    settings = get_settings()
    api_key = getattr(settings, "resend_api_key", "")
    if not api_key:
        return NotificationResult(sent=False, error="notification provider is not configured")

    template = resolve_template(getattr(settings, "referral_email_template_json", ""))
    subject, body = build_referral_email(
        first_name=first_name,
        total_entries=total_entries,
        referral_code=referral_code,
        referral_link=build_referral_link(
            base_url=settings.referral_link_base_url,
            referral_code=referral_code,
        ),
        template=template,
    )

    payload: dict[str, Any] = {
        "from": settings.notification_from_email,
        "to": [email],
        "subject": subject,
        "html": body,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.resend_timeout_seconds) as client:
            response = await client.post(
                f"{settings.resend_api_url.rstrip('/')}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
    except httpx.HTTPError as exc:
        logger.warning("referral_notification_transport_failed", error=str(exc))
        return NotificationResult(sent=False, error=str(exc))

    if not response.is_success:
        error = f"HTTP {response.status_code}: {response.text.strip()[:500]}"
        logger.warning("referral_notification_rejected", status_code=response.status_code)
        return NotificationResult(sent=False, error=error)

    try:
        message_id = response.json().get("id")
    except (ValueError, AttributeError):
        message_id = None
    logger.info("referral_notification_sent", referral_code=referral_code, message_id=message_id)
    return NotificationResult(sent=True, error=None, message_id=message_id)
