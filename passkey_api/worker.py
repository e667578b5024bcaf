"""
arq Worker Configuration.

Runs the passkey maintenance sweeps as cron jobs, for deployments that keep
background work out of the API process.

The challenge purge runs hourly. The inactivity sweep starts at 03:00 and
repeats every ``passkey_cleanup_interval_hours`` within the day; intervals
longer than a day fall back to once daily at 03:00, since cron hours cannot
span days. With ``passkey_cleanup_disable_interval`` set the sweep is left
to the single startup run in the API process and no cron entry is added.

Run the worker with:
    arq passkey_api.worker.WorkerSettings
"""

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings
from arq.cron import CronJob

from passkey_api.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def purge_expired_challenges_task(ctx: dict[str, Any]) -> int:
    """
    Delete passkey challenges past their expiry.

    Args:
        ctx: arq context (contains redis connection, job info, etc.)

    Returns:
        Number of challenges deleted
    """
    from passkey_api.core.database import get_db_context
    from passkey_api.services.maintenance import purge_expired_challenges

    async with get_db_context() as db:
        deleted_count = await purge_expired_challenges(db)

    if not get_settings().is_production:
        logger.info(
            f"Expired challenge purge complete: deleted {deleted_count}",
            extra={"deleted_count": deleted_count},
        )
    return deleted_count


async def revoke_inactive_passkeys_task(ctx: dict[str, Any]) -> int:
    """
    Revoke passkeys unused for longer than the configured inactivity threshold.

    Does nothing when the sweep is disabled or the threshold is not positive.

    Args:
        ctx: arq context (contains redis connection, job info, etc.)

    Returns:
        Number of passkeys revoked
    """
    from passkey_api.core.database import get_db_context
    from passkey_api.services.maintenance import revoke_inactive_credentials

    settings = get_settings()
    if not settings.passkey_cleanup_enabled or settings.passkey_cleanup_inactive_days <= 0:
        logger.info("Inactive passkey sweep disabled, skipping")
        return 0

    async with get_db_context() as db:
        revoked_count = await revoke_inactive_credentials(
            db, settings.passkey_cleanup_inactive_days
        )

    if not settings.is_production:
        logger.info(
            f"Inactive passkey sweep complete: revoked {revoked_count}",
            extra={
                "revoked_count": revoked_count,
                "inactive_days": settings.passkey_cleanup_inactive_days,
            },
        )
    return revoked_count


INACTIVE_SWEEP_START_HOUR = 3


def inactive_sweep_hours(interval_hours: int) -> set[int]:
    """Hours of the day at which the inactivity sweep runs."""
    if interval_hours > 24:
        return {INACTIVE_SWEEP_START_HOUR}
    return {(INACTIVE_SWEEP_START_HOUR + step) % 24 for step in range(0, 24, interval_hours)}


def build_cron_jobs(settings: Settings) -> list[CronJob]:
    """
    Build the cron schedule from the maintenance settings.

    Args:
        settings: Application settings

    Returns:
        Cron jobs for the worker
    """
    jobs = [cron(purge_expired_challenges_task, minute=0)]  # Hourly

    if settings.passkey_cleanup_disable_interval:
        return jobs

    jobs.append(
        cron(
            revoke_inactive_passkeys_task,
            hour=inactive_sweep_hours(settings.passkey_cleanup_interval_hours),
            minute=0,
        )
    )
    return jobs


class WorkerSettings:
    """
    arq worker settings.

    Configures the worker's connection to Redis, task functions,
    cron schedule, and retry behavior.
    """

    functions = [
        purge_expired_challenges_task,
        revoke_inactive_passkeys_task,
    ]

    cron_jobs = build_cron_jobs(get_settings())

    # Redis connection settings (loaded from environment)
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

    max_jobs = 2

    job_timeout = 300

    # Sweeps are idempotent, so retrying is safe
    retry_jobs = True
    max_tries = 3
