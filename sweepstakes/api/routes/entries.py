from __future__ import annotations

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from sweepstakes.referrals.errors import ReferralValidationError
from sweepstakes.referrals.signup import create_entry

router = APIRouter(tags=["entries"])
logger = structlog.get_logger(__name__)


class EntrySignupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(min_length=1, max_length=200, alias="firstName")
    last_name: str = Field(default="", max_length=200, alias="lastName")
    email: str = Field(min_length=3, max_length=320)
    referred_by: str | None = Field(default=None, max_length=16, alias="referredBy")


@router.post("/entries")
async def submit_entry(payload: EntrySignupRequest) -> JSONResponse:
    try:
        result = await create_entry(
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            referred_by=payload.referred_by,
        )
    except ReferralValidationError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": str(exc)},
        )
    except SQLAlchemyError as exc:
        logger.exception("entry_signup_database_failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Database operation failed",
                "details": type(exc).__name__,
            },
        )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        content={
            "success": True,
            "created": result.created,
            "beehiiv_subscribed": result.beehiiv_subscribed,
            "data": {
                **result.entry.as_public_dict(),
                "referral_code": result.entry.referral_code,
                "entry_count": result.entry.entry_count,
            },
        },
    )
