from __future__ import annotations

import re
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.referral_codes import generate_referral_code, normalize_referral_code
from sweepstakes.db.models.entries import Entry
from sweepstakes.db.repo.entries_repo import EntriesRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.referrals.errors import ReferralValidationError
from sweepstakes.referrals.types import EntrySnapshot
from sweepstakes.services.beehiiv import build_beehiiv_client, describe_error_response, is_beehiiv_configured

logger = structlog.get_logger(__name__)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
REFERRAL_CODE_MAX_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class SignupResult:
    entry: EntrySnapshot
    created: bool
    beehiiv_subscribed: bool


def normalize_email(raw_email: object) -> str | None:
    if not isinstance(raw_email, str):
        return None
    candidate = raw_email.strip().lower()
    if not EMAIL_RE.match(candidate):
        return None
    return candidate


async def _allocate_referral_code(session: AsyncSession) -> str:
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        candidate = generate_referral_code()
        if not await EntriesRepo.referral_code_exists(session, referral_code=candidate):
            return candidate
    raise RuntimeError("unable to allocate a unique referral code")


async def _resolve_referrer(session: AsyncSession, referred_by: object) -> str | None:
    referral_code = normalize_referral_code(referred_by)
    if referral_code is None:
        return None
    referrer = await EntriesRepo.get_by_referral_code(session, referral_code=referral_code)
    if referrer is None:
        logger.warning("entry_signup_unknown_referrer", referred_by=referral_code)
        return None
    return referrer.referral_code


async def _subscribe_new_entry(entry: EntrySnapshot, *, referred_by: str | None) -> bool:
    if not is_beehiiv_configured():
        return False

    try:
        async with build_beehiiv_client() as client:
            response = await client.create_subscription(
                email=entry.email,
                first_name=entry.first_name,
                last_name=entry.last_name,
                custom_fields={
                    "referral_code": entry.referral_code,
                    client.entries_field_name: str(entry.total_entries),
                },
                utm_source="sweepstakes" if referred_by is None else "referral",
            )
            if not response.is_success:
                logger.warning(
                    "entry_signup_beehiiv_rejected",
                    entry_id=entry.id,
                    error=describe_error_response(response),
                )
                return False
            subscriber_id = await client.lookup_subscriber_id(entry.email)
            if subscriber_id is not None:
                await client.add_tags(subscriber_id=subscriber_id, tags=client.tags)
    except Exception:
        logger.exception("entry_signup_beehiiv_failed", entry_id=entry.id)
        return False
    return True


async def create_entry(
    *,
    email: object,
    first_name: object,
    last_name: object = "",
    referred_by: object = None,
) -> SignupResult:
    normalized_email = normalize_email(email)
    normalized_first_name = first_name.strip() if isinstance(first_name, str) else ""
    normalized_last_name = last_name.strip() if isinstance(last_name, str) else ""
    if normalized_email is None:
        raise ReferralValidationError("A valid email is required")
    if not normalized_first_name:
        raise ReferralValidationError("first_name is required")

    try:
        async with SessionLocal.begin() as session:
            existing = await EntriesRepo.get_by_email(session, email=normalized_email)
            if existing is not None:
                return SignupResult(
                    entry=EntrySnapshot.from_entry(existing),
                    created=False,
                    beehiiv_subscribed=False,
                )

            referrer_code = await _resolve_referrer(session, referred_by)
            entry = await EntriesRepo.create(
                session,
                entry=Entry(
                    email=normalized_email,
                    first_name=normalized_first_name,
                    last_name=normalized_last_name,
                    referral_code=await _allocate_referral_code(session),
                    referred_by=referrer_code,
                    entry_count=1,
                    referral_count=0,
                    total_entries=1,
                ),
            )
            snapshot = EntrySnapshot.from_entry(entry)
    except IntegrityError:
        # Concurrent signup with the same email won the unique index.
        async with SessionLocal.begin() as session:
            existing = await EntriesRepo.get_by_email(session, email=normalized_email)
        if existing is None:
            raise
        return SignupResult(
            entry=EntrySnapshot.from_entry(existing),
            created=False,
            beehiiv_subscribed=False,
        )

    logger.info(
        "entry_signup_created",
        entry_id=snapshot.id,
        referral_code=snapshot.referral_code,
        referred_by=referrer_code,
    )
    beehiiv_subscribed = await _subscribe_new_entry(snapshot, referred_by=referrer_code)
    return SignupResult(entry=snapshot, created=True, beehiiv_subscribed=beehiiv_subscribed)
