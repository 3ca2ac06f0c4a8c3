import unittest
import uuid
from unittest.mock import AsyncMock, patch

from sqlalchemy import select, func

from tests.support import DatabaseTestCase
from tripdesk.models import ConversationMessage, NotificationOutbox
from tripdesk.services.notification_queue import NotificationJob, NotificationQueue, dedupe_key, stage_notification
from tripdesk.services.realtime import EVENT_MESSAGE_NEW, user_room


class TestNotificationQueue(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.user = await self.make_user()
        self.visit_id = uuid.uuid4()
        self.job = NotificationJob(user_id=self.user.id, visit_id=self.visit_id, event="approved", text="Verified!")
        self.queue = NotificationQueue(
            self.session_factory, self.notifier, self.official, max_attempts=3, retry_delay=0
        )

    async def message_count(self) -> int:
        return (await self.session.execute(select(func.count()).select_from(ConversationMessage))).scalar_one()

    async def test_deliver_appends_and_emits(self):
        message = await self.queue.deliver(self.job)

        self.assertEqual(message.text, "Verified!")
        self.assertEqual(message.dedupe_key, dedupe_key(message.conversation_id, "approved"))
        rooms = [room for room, _ in self.notifier.events_named(EVENT_MESSAGE_NEW)]
        self.assertEqual(rooms, [user_room(self.user.id)])

    async def test_redelivery_is_idempotent(self):
        first = await self.queue.deliver(self.job)
        second = await self.queue.deliver(self.job)

        self.assertEqual(first.id, second.id)
        self.assertEqual(await self.message_count(), 1)

    async def test_failed_attempt_is_retried(self):
        real_deliver = self.queue.deliver
        attempts = []

        async def flaky(job):
            attempts.append(job)
            if len(attempts) == 1:
                raise RuntimeError("connection reset")
            return await real_deliver(job)

        with patch.object(self.queue, "deliver", flaky):
            message = await self.queue.process(self.job)

        self.assertEqual(len(attempts), 2)
        self.assertIsNotNone(message)
        self.assertEqual(await self.message_count(), 1)

    async def test_gives_up_after_max_attempts(self):
        failing = AsyncMock(side_effect=RuntimeError("still down"))
        with patch.object(self.queue, "deliver", failing):
            self.assertIsNone(await self.queue.process(self.job))
        self.assertEqual(failing.await_count, 3)

    async def test_unknown_user_never_delivers(self):
        job = NotificationJob(user_id=uuid.uuid4(), visit_id=self.visit_id, event="rejected", text="Sorry")
        self.assertIsNone(await self.queue.process(job))
        self.assertEqual(await self.message_count(), 0)

    async def staged_job(self, event="approved", text="Verified!") -> NotificationJob:
        visit = await self.make_visit(self.user)
        job = stage_notification(self.session, self.user.id, visit.id, event, text)
        await self.session.commit()
        return job

    async def outbox_row(self, job: NotificationJob) -> NotificationOutbox:
        row = await self.session.get(NotificationOutbox, job.id)
        await self.session.refresh(row)
        return row

    async def test_delivery_marks_outbox_row(self):
        job = await self.staged_job()

        self.assertIsNotNone(await self.queue.process(job))

        row = await self.outbox_row(job)
        self.assertIsNotNone(row.delivered_at)
        self.assertEqual(row.attempts, 1)
        self.assertIsNone(row.last_error)

    async def test_failed_attempts_are_recorded(self):
        job = await self.staged_job()
        with patch.object(self.queue, "deliver", AsyncMock(side_effect=RuntimeError("still down"))):
            self.assertIsNone(await self.queue.process(job))

        row = await self.outbox_row(job)
        self.assertIsNone(row.delivered_at)
        self.assertEqual(row.attempts, 3)
        self.assertEqual(row.last_error, "still down")

        # Out of attempts, so a restart does not pick it up again
        self.assertEqual(await self.queue.recover(), 0)

    async def test_jobs_left_at_stop_are_delivered_after_restart(self):
        await self.queue.start()
        job = await self.staged_job()
        self.queue.enqueue(job)
        await self.queue.stop()
        self.assertEqual(await self.message_count(), 0)

        restarted = NotificationQueue(
            self.session_factory, self.notifier, self.official, max_attempts=3, retry_delay=0
        )
        await restarted.start()
        try:
            await restarted.join()
        finally:
            await restarted.stop()

        self.assertEqual(await self.message_count(), 1)
        self.assertIsNotNone((await self.outbox_row(job)).delivered_at)

    async def test_recover_skips_delivered_jobs(self):
        delivered = await self.staged_job()
        await self.queue.process(delivered)
        pending = await self.staged_job(event="rejected", text="Not verified")

        self.assertEqual(await self.queue.recover(), 1)
        self.assertEqual(self.queue._queue.get_nowait().id, pending.id)

    async def test_worker_drains_queue(self):
        other = NotificationJob(user_id=self.user.id, visit_id=uuid.uuid4(), event="rejected", text="Not verified")
        await self.queue.start()
        try:
            self.queue.enqueue(self.job)
            self.queue.enqueue(other)
            await self.queue.join()
        finally:
            await self.queue.stop()

        self.assertEqual(await self.message_count(), 2)

    async def test_resolves_official_when_missing(self):
        queue = NotificationQueue(self.session_factory, self.notifier, official=None, retry_delay=0)
        resolver = AsyncMock(return_value=self.official)
        with patch("tripdesk.services.notification_queue.OfficialIdentityResolver") as resolver_cls:
            resolver_cls.return_value.ensure = resolver
            await queue.deliver(self.job)

        self.assertEqual(queue.official, self.official)
        resolver.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
