"""Outbound notification queue.

Registration status changes enqueue an envelope on a Redis list and return;
a worker drains the list and delivers each envelope through a
NotificationSender with tenacity retries. Envelopes that still fail after
``notification_max_attempts`` go to a dead-letter list.

Delivery is at-least-once; the in-app sender dedupes on the envelope id.
"""

import asyncio
import json
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import structlog
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from sailsmart.core.config import get_settings
from sailsmart.db.models.notification import Notification

logger = structlog.get_logger(__name__)


class NotificationType(StrEnum):
    REGISTRATION_APPROVED = "registration_approved"
    REGISTRATION_DENIED = "registration_denied"
    AI_AUTO_APPROVED = "ai_auto_approved"
    AI_REVIEW_NEEDED = "ai_review_needed"


def build_envelope(
    notification_type: NotificationType,
    user_id: str,
    title: str,
    message: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": notification_type.value,
        "user_id": user_id,
        "title": title,
        "message": message,
        "link": link,
        "metadata": metadata or {},
        "enqueued_at": datetime.now(UTC).isoformat(),
    }


def registration_approved(
    crew_user_id: str, journey_id: str, journey_name: str, owner_name: str, owner_id: str | None = None
) -> dict[str, Any]:
    return build_envelope(
        NotificationType.REGISTRATION_APPROVED,
        crew_user_id,
        "Registration Approved",
        f'Your registration for "{journey_name}" has been approved by {owner_name}. Welcome aboard!',
        "/crew/registrations",
        {"journey_id": journey_id, "journey_name": journey_name, "owner_name": owner_name, "owner_id": owner_id},
    )


def registration_denied(
    crew_user_id: str,
    journey_id: str,
    journey_name: str,
    owner_name: str,
    reason: str | None = None,
    owner_id: str | None = None,
) -> dict[str, Any]:
    if reason:
        message = f'Your registration for "{journey_name}" was not approved. Reason: {reason}'
    else:
        message = f'Your registration for "{journey_name}" was not approved by {owner_name}.'
    return build_envelope(
        NotificationType.REGISTRATION_DENIED,
        crew_user_id,
        "Registration Not Approved",
        message,
        "/crew/registrations",
        {
            "journey_id": journey_id,
            "journey_name": journey_name,
            "owner_name": owner_name,
            "owner_id": owner_id,
            "reason": reason,
        },
    )


def ai_auto_approved(
    owner_id: str, registration_id: str, journey_id: str, journey_name: str, crew_name: str, crew_id: str, score: int
) -> dict[str, Any]:
    return build_envelope(
        NotificationType.AI_AUTO_APPROVED,
        owner_id,
        "Registration Auto-Approved",
        f'{crew_name}\'s registration for "{journey_name}" was automatically approved by AI (Score: {score}%).',
        f"/owner/registrations/{registration_id}",
        {
            "registration_id": registration_id,
            "journey_id": journey_id,
            "journey_name": journey_name,
            "crew_name": crew_name,
            "crew_id": crew_id,
            "match_score": score,
        },
    )


def ai_review_needed(
    owner_id: str,
    registration_id: str,
    journey_id: str,
    journey_name: str,
    crew_name: str,
    crew_id: str,
    score: int | None,
    reason: str | None = None,
) -> dict[str, Any]:
    score_text = f" (AI Score: {score}%)" if score is not None else ""
    return build_envelope(
        NotificationType.AI_REVIEW_NEEDED,
        owner_id,
        "Registration Needs Review",
        f'{crew_name}\'s registration for "{journey_name}" needs your review{score_text}.',
        f"/owner/registrations/{registration_id}",
        {
            "registration_id": registration_id,
            "journey_id": journey_id,
            "journey_name": journey_name,
            "crew_name": crew_name,
            "crew_id": crew_id,
            "match_score": score,
            "reason": reason,
        },
    )


class NotificationOutbox:
    """Producer side: push envelopes onto the Redis queue.

    ``enqueue`` never raises. A failed push is logged and dropped so the
    status change that triggered it stands.
    """

    def __init__(self, redis: Redis, queue_key: str | None = None):
        settings = get_settings()
        self.redis = redis
        self.queue_key = queue_key or settings.notification_queue_key

    async def enqueue(self, envelope: dict[str, Any]) -> bool:
        try:
            await self.redis.rpush(self.queue_key, json.dumps(envelope))
        except Exception as e:
            logger.warning(
                "notification_enqueue_failed",
                notification_id=envelope.get("id"),
                type=envelope.get("type"),
                user_id=envelope.get("user_id"),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        logger.info(
            "notification_enqueued",
            notification_id=envelope["id"],
            type=envelope["type"],
            user_id=envelope["user_id"],
        )
        return True


@runtime_checkable
class NotificationSender(Protocol):
    async def send(self, envelope: dict[str, Any]) -> None:
        """Deliver one envelope. Raise to trigger a retry."""
        ...


class InAppNotificationSender:
    """Writes envelopes to the ``notifications`` table, once per envelope id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def send(self, envelope: dict[str, Any]) -> None:
        async with self.session_factory() as db:
            existing = await db.execute(
                select(Notification.id).where(Notification.delivery_id == envelope["id"])
            )
            if existing.scalar_one_or_none() is not None:
                return
            db.add(Notification(
                delivery_id=envelope["id"],
                user_id=envelope["user_id"],
                type=envelope["type"],
                title=envelope["title"],
                message=envelope["message"],
                link=envelope.get("link"),
                payload=envelope.get("metadata") or {},
            ))
            await db.commit()


class NotificationWorker:
    """Consumer side: drain the queue, retry deliveries, dead-letter failures.

    An envelope is claimed by moving it onto a processing list and only
    removed from there once it was delivered or dead-lettered. Envelopes left
    behind by an interrupted drain go back on the queue before the next one.
    Run one worker per queue.
    """

    def __init__(
        self,
        redis: Redis,
        sender: NotificationSender,
        *,
        max_attempts: int | None = None,
        wait=None,
        queue_key: str | None = None,
        dead_letter_key: str | None = None,
        processing_key: str | None = None,
    ):
        settings = get_settings()
        self.redis = redis
        self.sender = sender
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.wait = wait if wait is not None else wait_exponential(multiplier=0.5, min=0.5, max=5)
        self.queue_key = queue_key or settings.notification_queue_key
        self.dead_letter_key = dead_letter_key or settings.notification_dead_letter_key
        self.processing_key = processing_key or f"{self.queue_key}:processing"

    async def deliver(self, envelope: dict[str, Any]) -> bool:
        """Deliver one envelope with retries; dead-letter it when retries run out.

        Returns:
            True if delivered

        Raises:
            redis.RedisError: If the dead-letter push fails
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self.wait,
                reraise=False,
            ):
                with attempt:
                    await self.sender.send(envelope)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            await self.redis.rpush(
                self.dead_letter_key,
                json.dumps({
                    **envelope,
                    "attempts": self.max_attempts,
                    "error": str(last),
                    "dead_lettered_at": datetime.now(UTC).isoformat(),
                }),
            )
            logger.error(
                "notification_dead_lettered",
                notification_id=envelope.get("id"),
                type=envelope.get("type"),
                user_id=envelope.get("user_id"),
                attempts=self.max_attempts,
                error=str(last),
                error_type=type(last).__name__,
            )
            return False

        logger.info("notification_delivered", notification_id=envelope["id"], type=envelope["type"])
        return True

    async def requeue_unfinished(self) -> int:
        """Move envelopes stranded on the processing list back to the head of the queue."""
        moved = 0
        while await self.redis.lmove(self.processing_key, self.queue_key, "RIGHT", "LEFT") is not None:
            moved += 1
        if moved:
            logger.warning("notification_requeued", count=moved, queue=self.queue_key)
        return moved

    async def _handle(self, raw: str) -> bool:
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            await self.redis.rpush(self.dead_letter_key, raw)
            logger.error("notification_envelope_malformed", raw=raw[:200])
            return False
        return await self.deliver(envelope)

    async def drain(self, max_items: int | None = None) -> tuple[int, int]:
        """Deliver queued envelopes until the queue is empty or ``max_items`` are handled.

        Returns:
            Tuple of (delivered, dead_lettered)
        """
        delivered = dead = 0
        while max_items is None or delivered + dead < max_items:
            raw = await self.redis.lmove(self.queue_key, self.processing_key, "LEFT", "RIGHT")
            if raw is None:
                break
            if await self._handle(raw):
                delivered += 1
            else:
                dead += 1
            await self.redis.lrem(self.processing_key, 1, raw)
        return delivered, dead

    async def run(self, stop: asyncio.Event, poll_interval: float = 1.0) -> None:
        """Drain in a loop until ``stop`` is set."""
        logger.info("notification_worker_started", queue=self.queue_key)
        while not stop.is_set():
            try:
                await self.requeue_unfinished()
                await self.drain()
            except Exception as e:
                logger.error("notification_worker_error", error=str(e), error_type=type(e).__name__)
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval)
            except TimeoutError:
                pass
        logger.info("notification_worker_stopped", queue=self.queue_key)
