"""Six-digit participant ids printed on observer credentials."""

import logging
import re
import secrets
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile

logger = logging.getLogger(__name__)

_DOB_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class UniqueIdError(Exception):
    """No free id could be found."""


def generate_numeric_id(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def parse_date_of_birth(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` date of birth.

    Raises:
        ValueError: wrong format or not a real calendar date
    """
    if not _DOB_PATTERN.match(value or ""):
        raise ValueError("Invalid date_of_birth format. Expected YYYY-MM-DD.")
    return date.fromisoformat(value)


async def assign_unique_user_id(
    db: AsyncSession,
    profile: Profile,
    date_of_birth: date,
    max_attempts: int = 10,
) -> str:
    """Give ``profile`` a unique id (keeping one it already has) and store its DOB.

    The caller commits.
    """
    profile.date_of_birth = date_of_birth
    if profile.unique_user_id:
        return profile.unique_user_id

    for _ in range(max_attempts):
        candidate = generate_numeric_id()
        result = await db.execute(select(Profile.id).where(Profile.unique_user_id == candidate))
        if result.scalar_one_or_none() is None:
            profile.unique_user_id = candidate
            logger.info(f"Assigned participant id to profile {profile.id}")
            return candidate

    raise UniqueIdError(f"Failed to generate a unique ID after {max_attempts} attempts")
