"""Fire-and-forget notification dispatch with in-memory and Redis queue backends"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Set
import redis.asyncio as redis
from claimdesk.constants import NotificationEvent, UserRole
from claimdesk.orchestrator.retry_handler import retry_with_exponential_backoff
from claimdesk.utils import metrics
from claimdesk.utils.errors import ConfigurationError, NotificationError
from claimdesk.utils.logging import get_logger
from claimdesk.utils.timeutils import utcnow

logger = get_logger(__name__)


class NotificationDispatcher:
    """
    Queues notification payloads for the delivery service.

    dispatch() never blocks or raises: each payload is pushed by a background
    task with retries, and delivery failures are logged. Call drain() to wait
    for everything queued so far.
    """

    def __init__(
        self,
        backend: str = "memory",
        redis_client: Optional[redis.Redis] = None,
        queue_name: str = "claimdesk:notifications",
        max_retries: int = 3,
        base_delay: float = 2,
        max_delay: float = 30
    ):
        if backend not in ("memory", "redis"):
            raise ConfigurationError(f"Unknown notification backend: {backend}")
        if backend == "redis" and redis_client is None:
            raise ConfigurationError("Redis notification backend requires a redis client")

        self.backend = backend
        self.queue_name = queue_name
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._redis = redis_client
        self._pending: Set[asyncio.Task] = set()
        self.sent: List[Dict[str, Any]] = []

    def dispatch(
        self,
        event: NotificationEvent,
        user_id: Optional[str],
        data: Dict[str, Any],
        recipient_role: Optional[UserRole] = None
    ) -> None:
        """
        Queue a notification without waiting for delivery

        Args:
            event: Notification event type
            user_id: Recipient user (None when addressed to a role)
            data: Event payload
            recipient_role: Role-wide recipients, e.g. STAFF for review requests
        """
        payload = {
            "event": NotificationEvent(event).value,
            "user_id": user_id,
            "recipient_role": UserRole(recipient_role).value if recipient_role else None,
            "data": data,
            "queued_at": utcnow().isoformat()
        }

        task = asyncio.get_running_loop().create_task(self._deliver(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(self, payload: Dict[str, Any]) -> None:
        if self.backend == "memory":
            self.sent.append(payload)
            return
        await self._redis.rpush(self.queue_name, json.dumps(payload, default=str))

    async def _deliver(self, payload: Dict[str, Any]) -> None:
        try:
            await retry_with_exponential_backoff(
                self._push,
                self.max_retries,
                self.base_delay,
                self.max_delay,
                payload,
                error_class=NotificationError
            )
            metrics.notifications_dispatched.labels(event=payload["event"], status="queued").inc()
            logger.debug("Notification queued", event=payload["event"], user_id=payload["user_id"])
        except NotificationError as e:
            metrics.notifications_dispatched.labels(event=payload["event"], status="failed").inc()
            logger.error(
                "Notification delivery failed",
                event=payload["event"],
                user_id=payload["user_id"],
                error=str(e)
            )

    async def drain(self) -> None:
        """Wait for all queued deliveries to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending(self) -> int:
        return len(self._pending)


def create_dispatcher(config: Dict[str, Any], redis_client: Optional[redis.Redis] = None) -> NotificationDispatcher:
    """
    Build the notification dispatcher described by the configuration

    Args:
        config: Full engine configuration
        redis_client: Shared client; created from redis_url when the redis backend is selected
    """
    section = config.get('notifications') or {}
    backend = section.get('backend', 'memory')

    if backend == "redis" and redis_client is None:
        redis_client = redis.from_url(config.get('redis_url', 'redis://localhost:6379/0'), decode_responses=True)

    logger.info("Using notification backend", backend=backend)
    return NotificationDispatcher(
        backend=backend,
        redis_client=redis_client,
        queue_name=section.get('queue_name', 'claimdesk:notifications'),
        max_retries=section.get('max_retries', 3),
        base_delay=section.get('base_delay_seconds', 2),
        max_delay=section.get('max_delay_seconds', 30)
    )
