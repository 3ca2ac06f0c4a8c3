"""
NotificationQueue - review outcome delivery.

Responsibilities:
1. Accept jobs from request handlers without blocking the response. Each job
   is backed by a `notification_jobs` row written with the review decision;
   rows not yet delivered are reloaded when the worker starts.
2. Deliver each job in its own DB session: find/create the user's
   trip_verification conversation, append the system message, emit realtime.
3. Retry failed attempts. The message dedupe key makes a retried job append
   at most once.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.core.config import settings
from tripdesk.core.errors import NotFoundError
from tripdesk.core.time_utils import get_utc_now
from tripdesk.models.conversation import ConversationMessage, SupportReason
from tripdesk.models.notification import NotificationOutbox
from tripdesk.services.official_identity import OfficialIdentity, OfficialIdentityResolver
from tripdesk.services.realtime import RealtimeNotifier, publish_support_message
from tripdesk.services.support_chat import SupportChatService, format_message

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotificationJob:
    user_id: uuid.UUID
    visit_id: uuid.UUID
    event: str
    text: str
    # Outbox row backing this job
    id: Optional[uuid.UUID] = None


def stage_notification(session: AsyncSession, user_id, visit_id, event: str, text: str) -> NotificationJob:
    """
    Add the outbox row to `session`. It is written when the caller commits,
    together with whatever else the transaction holds.
    """
    row = NotificationOutbox(id=uuid.uuid4(), user_id=user_id, visit_id=visit_id, event=event, text=text, attempts=0)
    session.add(row)
    return NotificationJob(user_id=user_id, visit_id=visit_id, event=event, text=text, id=row.id)


def dedupe_key(conversation_id, event: str) -> str:
    return f"{conversation_id}:{event}"


class NotificationQueue:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        notifier: Optional[RealtimeNotifier] = None,
        official: Optional[OfficialIdentity] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.official = official
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS
        self.retry_delay = settings.NOTIFICATION_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            recovered = await self.recover()
            self._worker = asyncio.create_task(self._run(), name="notification-queue")
            logger.info("notification_queue_started", recovered=recovered)

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        # Undelivered jobs stay in the outbox for the next start
        logger.info("notification_queue_stopped", pending=self._queue.qsize())

    async def recover(self) -> int:
        """Queue every outbox row that is undelivered and has attempts left."""
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(
                    select(NotificationOutbox)
                    .where(
                        NotificationOutbox.delivered_at.is_(None),
                        NotificationOutbox.attempts < self.max_attempts,
                    )
                    .order_by(NotificationOutbox.created_at)
                )).scalars().all()
        except Exception as e:
            logger.error("notification_recovery_failed", error=str(e))
            return 0

        for row in rows:
            self.enqueue(NotificationJob(
                user_id=row.user_id, visit_id=row.visit_id, event=row.event, text=row.text, id=row.id
            ))
        return len(rows)

    def enqueue(self, job: NotificationJob) -> None:
        self._queue.put_nowait(job)
        logger.debug("notification_enqueued", visit_id=str(job.visit_id), event_name=job.event)

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()

    async def process(self, job: NotificationJob) -> Optional[ConversationMessage]:
        """
        Deliver with retries. Final failure is logged, never raised.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                message = await self.deliver(job)
                await self._record_attempt(job)
                logger.info(
                    "notification_delivered",
                    visit_id=str(job.visit_id),
                    event_name=job.event,
                    attempt=attempt,
                )
                return message
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "notification_attempt_failed",
                    visit_id=str(job.visit_id),
                    event_name=job.event,
                    attempt=attempt,
                    error=str(e),
                )
                await self._record_attempt(job, error=str(e))
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.error("notification_delivery_failed", visit_id=str(job.visit_id), event_name=job.event)
        return None

    async def _record_attempt(self, job: NotificationJob, error: Optional[str] = None) -> None:
        if job.id is None:
            return
        values = {"attempts": NotificationOutbox.attempts + 1, "last_error": error}
        if error is None:
            values["delivered_at"] = get_utc_now()
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(NotificationOutbox)
                    .where(NotificationOutbox.id == job.id)
                    .values(**values)
                )
                await session.commit()
        except Exception as e:
            # A missed update only means the job is replayed; delivery is deduplicated
            logger.warning("notification_outbox_update_failed", job_id=str(job.id), error=str(e))

    async def _resolve_official(self, session: AsyncSession) -> OfficialIdentity:
        if self.official is None:
            self.official = await OfficialIdentityResolver(session).ensure()
        if self.official is None:
            raise NotFoundError("Official account not available")
        return self.official

    async def deliver(self, job: NotificationJob) -> ConversationMessage:
        """Single delivery attempt."""
        async with self.session_factory() as session:
            official = await self._resolve_official(session)
            chat = SupportChatService(session, official)

            conversation = await chat.get_or_create(
                job.user_id, SupportReason.TRIP_VERIFICATION.value, job.visit_id
            )
            message = await chat.append_system_message(
                conversation.id, job.text, dedupe_key=dedupe_key(conversation.id, job.event)
            )
            await publish_support_message(
                self.notifier,
                str(conversation.id),
                conversation.user_id,
                official.id,
                format_message(message),
            )
            return message
