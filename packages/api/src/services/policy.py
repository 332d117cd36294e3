# This project was developed with assistance from AI tools.
"""Read-only access to administrator-maintained policy values.

Rows in the ``policies`` table override the defaults below. The core never
writes policies; an unknown key with no default resolves to None.
"""

from db import Policy
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_POLICIES: dict[str, int] = {
    "proof_submission_rate_limit_web": 5,
    "proof_submission_rate_limit_email": 10,
    "proof_submission_rate_period": 24,
    "waiting_period_years": 3,
    "voucher_value": 500,
    "voucher_validity_period_months": 6,
}


async def get_policy(session: AsyncSession, key: str) -> int | None:
    """Return the configured value for ``key``, falling back to the default."""
    result = await session.execute(select(Policy.value).where(Policy.key == key))
    value = result.scalar_one_or_none()
    if value is None:
        return DEFAULT_POLICIES.get(key)
    return value


async def load_policies(session: AsyncSession) -> dict[str, int]:
    """Snapshot of every policy value (defaults overlaid with stored rows)."""
    result = await session.execute(select(Policy.key, Policy.value))
    policies = dict(DEFAULT_POLICIES)
    for key, value in result.all():
        policies[key] = value
    return policies
