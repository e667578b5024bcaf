"""
Passkey Maintenance

Two sweeps that keep the passkey tables tidy:

- expired-challenge purge: deletes challenges past their expiry. Runs at
  startup and then hourly, always.
- inactive-credential sweep: revokes active credentials that have not been
  used for ``passkey_cleanup_inactive_days``. Runs at startup and then every
  ``passkey_cleanup_interval_hours`` unless the interval is disabled.

Both only issue predicate-filtered bulk statements, so they can run next to
live traffic. MaintenanceScheduler runs them in-process as asyncio tasks;
worker.py exposes the same sweeps as arq cron jobs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.config import Settings
from passkey_api.repositories.challenge import ChallengeRepository
from passkey_api.repositories.credential import CredentialRepository

logger = logging.getLogger(__name__)

CHALLENGE_PURGE_INTERVAL_SECONDS = 3600

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Storage not reachable (not initialized, database down, network error)
STORAGE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, OSError)


# =============================================================================
# Sweeps
# =============================================================================


async def purge_expired_challenges(db: AsyncSession, now: datetime | None = None) -> int:
    """
    Delete every challenge whose expiry is before ``now``.

    Returns:
        Number of challenges deleted
    """
    now = now or datetime.now(UTC)
    return await ChallengeRepository(db).delete_expired(now)


async def revoke_inactive_credentials(
    db: AsyncSession, inactive_days: int, now: datetime | None = None
) -> int:
    """
    Revoke active credentials last used more than ``inactive_days`` ago.

    Args:
        db: Database session
        inactive_days: Inactivity threshold; zero or negative disables the sweep
        now: Reference time (defaults to the current time)

    Returns:
        Number of credentials revoked
    """
    if inactive_days <= 0:
        return 0

    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=inactive_days)
    return await CredentialRepository(db).revoke_inactive(cutoff, now)


# =============================================================================
# Scheduler
# =============================================================================


class MaintenanceScheduler:
    """
    Owns the in-process maintenance tasks for one application instance.

    Created in the FastAPI lifespan; ``start()`` launches the sweeps and
    ``stop()`` cancels them.
    """

    def __init__(self, settings: Settings, session_factory: SessionFactory | None):
        self.settings = settings
        self.session_factory = session_factory
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def task_names(self) -> list[str]:
        return sorted(self._tasks)

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    @property
    def inactive_sweep_enabled(self) -> bool:
        return (
            self.settings.passkey_cleanup_enabled
            and self.settings.passkey_cleanup_inactive_days > 0
        )

    async def start(self) -> None:
        """Launch the sweeps. Calling start on a running scheduler does nothing."""
        if self._tasks:
            return

        if self.inactive_sweep_enabled:
            if self.settings.passkey_cleanup_disable_interval:
                self._tasks["inactive_sweep"] = asyncio.create_task(self._run_once())
            else:
                self._tasks["inactive_sweep"] = asyncio.create_task(
                    self._repeat(
                        self.run_inactive_sweep,
                        self.settings.passkey_cleanup_interval_hours * 3600,
                    )
                )
        else:
            logger.info("Inactive passkey sweep disabled")

        self._tasks["challenge_purge"] = asyncio.create_task(
            self._repeat(self.run_challenge_purge, CHALLENGE_PURGE_INTERVAL_SECONDS)
        )
        logger.info(f"Passkey maintenance started: {', '.join(self.task_names)}")

    async def stop(self) -> None:
        """Cancel every sweep task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if tasks:
            logger.info("Passkey maintenance stopped")

    async def run_inactive_sweep(self) -> int | None:
        """Run the inactive-credential sweep once. Returns None when skipped."""
        if not self.inactive_sweep_enabled:
            return None

        inactive_days = self.settings.passkey_cleanup_inactive_days

        async def sweep(db: AsyncSession) -> int:
            return await revoke_inactive_credentials(db, inactive_days)

        return await self._run("inactive passkey sweep", sweep, "revoked")

    async def run_challenge_purge(self) -> int | None:
        """Run the expired-challenge purge once. Returns None when skipped."""
        return await self._run("expired challenge purge", purge_expired_challenges, "deleted")

    async def _run_once(self) -> None:
        await self.run_inactive_sweep()

    async def _repeat(self, job: Callable[[], Awaitable[int | None]], interval: float) -> None:
        while True:
            await job()
            await asyncio.sleep(interval)

    async def _run(
        self,
        name: str,
        job: Callable[[AsyncSession], Awaitable[int]],
        verb: str,
    ) -> int | None:
        if self.session_factory is None:
            logger.warning(f"Skipping {name}: database not initialized")
            return None

        try:
            async with self.session_factory() as db:
                count = await job(db)
        except STORAGE_UNAVAILABLE_ERRORS as e:
            logger.warning(f"Skipping {name}: database unavailable ({e})")
            return None
        except Exception as e:
            logger.error(f"Error during {name}: {e}", exc_info=True)
            return None

        if not self.settings.is_production:
            logger.info(f"Completed {name}: {verb} {count}", extra={"count": count})
        return count
