"""
Session Reconciler - expires survey sessions that went quiet.

A session is expired when its status is not terminal (completed, abandoned,
expired) and its most recent timestamp (last activity, start, creation) is
older than the inactivity timeout. Expired sessions are written in batches;
one failed write does not stop the rest of its batch, and the next sweep
picks up whatever was missed.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from surveyhub.core.config import settings
from surveyhub.core.errors import DatabaseNotInitializedError
from surveyhub.core.timeutils import isoformat, now_utc
from surveyhub.schemas.survey import TERMINAL_SESSION_STATUSES, SurveySessionOut, SurveySessionUpdate
from surveyhub.schemas.validation import CleanupStats
from surveyhub.services.scheduler_service import remove_job, schedule_interval_job

logger = logging.getLogger(__name__)

CLEANUP_ACTOR = "cleanup-service"


def last_seen(session: SurveySessionOut) -> Optional[datetime]:
    stamps = [s for s in (session.last_activity_at, session.started_at, session.created_at) if s is not None]
    return max(stamps) if stamps else None


def is_expired(session: SurveySessionOut, cutoff: datetime) -> bool:
    if session.status in TERMINAL_SESSION_STATUSES:
        return False
    seen = last_seen(session)
    return seen is not None and seen < cutoff


class SessionCleanupService:
    JOB_ID = "session-cleanup"

    def __init__(
        self,
        helpers,
        initializer,
        scheduler,
        session_timeout: Optional[timedelta] = None,
        cleanup_interval: Optional[timedelta] = None,
        batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._helpers = helpers
        self._initializer = initializer
        self._scheduler = scheduler
        self._session_timeout = session_timeout or timedelta(hours=settings.session_timeout_hours)
        self._cleanup_interval = cleanup_interval or timedelta(minutes=settings.session_cleanup_interval_minutes)
        self._batch_size = batch_size or settings.session_cleanup_batch_size
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.info("Session cleanup service already running")
            return

        if not self._initializer.is_initialized:
            raise DatabaseNotInitializedError(
                "Database service not initialized. Call initialize() before starting session cleanup."
            )

        # First sweep runs right away, then every interval
        schedule_interval_job(self._scheduler, self._scheduled_cleanup, self.JOB_ID, self._cleanup_interval,
                              run_immediately=True)
        self._running = True
        logger.info(
            "Session cleanup service started (timeout=%s, interval=%s, batch=%s)",
            self._session_timeout, self._cleanup_interval, self._batch_size,
        )

    def stop(self) -> None:
        if not self._running:
            return
        remove_job(self._scheduler, self.JOB_ID)
        self._running = False
        logger.info("Session cleanup service stopped")

    async def manual_cleanup(self) -> int:
        """Run one sweep now and return how many sessions it found expired."""
        logger.info("Manual session cleanup triggered")
        return await self._perform_cleanup()

    def get_stats(self) -> CleanupStats:
        return CleanupStats(
            is_running=self._running,
            session_timeout_hours=self._session_timeout.total_seconds() / 3600,
            cleanup_interval_minutes=self._cleanup_interval.total_seconds() / 60,
            max_sessions_per_cleanup=self._batch_size,
        )

    async def _scheduled_cleanup(self) -> None:
        try:
            await self._perform_cleanup()
        except Exception as e:
            logger.error("Session cleanup failed: %s", e)

    async def _perform_cleanup(self) -> int:
        now = self._clock()
        cutoff = now - self._session_timeout
        expired = await self._get_expired_sessions(cutoff)

        if not expired:
            logger.debug("No expired sessions found")
            return 0

        logger.info("Found %s expired session(s) to clean up", len(expired))
        for start in range(0, len(expired), self._batch_size):
            await self._process_batch(expired[start:start + self._batch_size], now)

        return len(expired)

    async def _get_expired_sessions(self, cutoff: datetime) -> List[SurveySessionOut]:
        sessions = await self._helpers.get_survey_sessions()
        return [session for session in sessions if is_expired(session, cutoff)]

    async def _process_batch(self, batch: List[SurveySessionOut], now: datetime) -> None:
        results = await asyncio.gather(
            *(self._mark_expired(session, now) for session in batch),
            return_exceptions=True,
        )
        failed = 0
        for session, result in zip(batch, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error("Failed to expire session %s: %s", session.id, result,
                             extra={"session_id": session.id})
        logger.info("Expired %s/%s session(s) in batch", len(batch) - failed, len(batch))

    async def _mark_expired(self, session: SurveySessionOut, now: datetime) -> None:
        await self._helpers.update_survey_session(session.id, SurveySessionUpdate(
            status="expired",
            last_activity_at=now,
            metadata={
                "expired_at": isoformat(now),
                "expired_by": CLEANUP_ACTOR,
                "previous_status": session.status,
                "reason": "inactivity_timeout",
            },
        ))
