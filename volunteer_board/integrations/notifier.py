# volunteer_board/integrations/notifier.py
"""Announcement delivery to the makerspace chat channel"""
import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import aiohttp
import backoff
from jinja2 import Environment, select_autoescape
from loguru import logger
from pydantic import BaseModel, ConfigDict

from volunteer_board.api.v1.schemas.tasks import TaskRecord
from volunteer_board.api.v1.schemas.volunteers import VolunteerRecord
from volunteer_board.core import tracing
from volunteer_board.core.config import settings
from volunteer_board.core.metrics import NOTIFICATION_FAILURES
from volunteer_board.core.task_utils import format_minutes, minutes_to_hours
from volunteer_board.db.models.enums import NotificationKind
from volunteer_board.exceptions.board import NotificationFailure

# Embed colours
BLURPLE = 0x5865F2
GREEN = 0x57F287

TEMPLATES: Dict[NotificationKind, Dict[str, str]] = {
    NotificationKind.CREATED: {
        "content": "🆕 **New task available!**",
        "title": "📋 New Task #{{ task.task_number }}: {{ task.title }}",
    },
    NotificationKind.CLAIMED: {
        "content": "👋 **Task claimed!**",
        "title": "🎯 Task #{{ task.task_number }} claimed by {{ names | join(', ') }}",
    },
    NotificationKind.COMPLETED: {
        "content": "🎉 **Task completed!**",
        "title": "✅ Task #{{ task.task_number }} Completed!",
    },
    NotificationKind.COMPLETED_DM: {
        "content": "👏 **Great work, {{ names[0] }}!**\n\nYou've completed a task! Here are the details:",
        "title": "🎉 Congratulations! Task #{{ task.task_number }} Completed!",
    },
}


class NotificationError(Exception):
    """Announcement could not be rendered or delivered"""
    pass


class NotificationEvent(BaseModel):
    """Something worth announcing, built after the authoritative write"""
    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    task: TaskRecord
    contributors: List[VolunteerRecord] = []
    minutes_per_volunteer: Optional[int] = None
    actor: Optional[VolunteerRecord] = None

    @property
    def aggregate_minutes(self) -> Optional[int]:
        if self.minutes_per_volunteer is None:
            return None
        return self.minutes_per_volunteer * len(self.contributors)

    @property
    def recipient(self) -> Optional[VolunteerRecord]:
        """The one contributor a direct message is addressed to"""
        if self.kind != NotificationKind.COMPLETED_DM or not self.contributors:
            return None
        return self.contributors[0]


class NotificationDispatcher(Protocol):
    """Best-effort announcer; callers never let its failures reach the user"""

    async def announce(self, event: NotificationEvent) -> None: ...


class WebhookNotifier:
    """Renders announcements and delivers them to a chat webhook from worker tasks"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_tries: int = None,
        board_name: str = None,
        base_url: str = None,
        dm_webhook_url: Optional[str] = None
    ):
        self.webhook_url = webhook_url
        # Direct messages go to a bot relay when one is configured
        self.dm_webhook_url = dm_webhook_url or webhook_url
        self.max_tries = max_tries or settings.NOTIFY_MAX_RETRIES
        self.board_name = board_name or settings.BOARD_NAME
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.jinja_env = Environment(
            autoescape=select_autoescape(default_for_string=False),
            enable_async=True
        )
        self.delivery_queue = asyncio.Queue()
        self.running = False
        self.workers = []
        self.stats = {"queued": 0, "delivered": 0, "failed": 0}

        self._post = backoff.on_exception(
            backoff.expo,
            (aiohttp.ClientError, asyncio.TimeoutError),
            max_tries=self.max_tries,
            max_time=60,
            giveup=self._is_permanent,
            on_backoff=self._log_backoff
        )(self._post_once)

    async def start(self, num_workers: int = None):
        """Start delivery workers"""
        if self.running:
            return

        self.running = True
        num_workers = num_workers or settings.NOTIFY_WORKERS

        for i in range(num_workers):
            worker = asyncio.create_task(self._delivery_worker(f"worker-{i}"))
            self.workers.append(worker)

        if self.webhook_url:
            logger.info(f"Notifier started with {num_workers} workers")
        else:
            logger.info("Notifier started without a webhook URL; announcements will only be logged")

    async def stop(self):
        """Stop delivery workers"""
        self.running = False

        for worker in self.workers:
            worker.cancel()

        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()

        pending = self.delivery_queue.qsize()
        if pending:
            logger.warning(f"Notifier stopped with {pending} undelivered announcements")
        logger.info("Notifier stopped")

    async def announce(self, event: NotificationEvent) -> None:
        """Render ``event`` and queue it for delivery"""
        payload = await self.render(event)

        if not self.webhook_url:
            logger.info(f"Announcement ({event.kind.value}) for task #{event.task.task_number}: "
                        f"{payload['embeds'][0]['title']}")
            return

        if not self.running:
            # No workers (scripts, tests): deliver inline
            await self._post(payload)
            self.stats["delivered"] += 1
            return

        await self.delivery_queue.put((payload, tracing.get_trace_context()))
        self.stats["queued"] += 1
        logger.debug(f"Queued {event.kind.value} announcement for task {event.task.id}")

    def task_url(self, task: TaskRecord) -> str:
        return f"{self.base_url}/task/{task.id}"

    async def render(self, event: NotificationEvent) -> Dict[str, Any]:
        """Build the chat payload for ``event``"""
        template = TEMPLATES[event.kind]
        names = [v.display_name for v in event.contributors]
        context = {"task": event.task, "names": names, "event": event}

        try:
            content_template = self.jinja_env.from_string(template["content"])
            title_template = self.jinja_env.from_string(template["title"])
            content = await content_template.render_async(**context)
            title = await title_template.render_async(**context)
        except Exception as e:
            logger.error(f"Failed to render announcement template: {e}")
            raise NotificationError(f"Template rendering failed: {e}")

        if event.kind == NotificationKind.COMPLETED_DM:
            return self._direct_message(event, content, title)

        task = event.task
        fields = []
        if event.kind == NotificationKind.COMPLETED:
            fields.append({"name": "👥 Completed by", "value": ", ".join(names), "inline": False})
        fields.append({"name": "🏷️ Zone", "value": task.zone.value, "inline": True})

        if event.kind == NotificationKind.COMPLETED and event.minutes_per_volunteer is not None:
            per_volunteer = event.minutes_per_volunteer
            if len(names) > 1:
                fields.append({
                    "name": "⏱️ Time per Volunteer",
                    "value": f"{format_minutes(per_volunteer)} ({minutes_to_hours(per_volunteer)}h)",
                    "inline": True
                })
                fields.append({
                    "name": "📊 Total Time",
                    "value": f"{format_minutes(event.aggregate_minutes)} "
                             f"({minutes_to_hours(event.aggregate_minutes)}h)",
                    "inline": True
                })
            else:
                fields.append({
                    "name": "⏱️ Time Spent",
                    "value": f"{format_minutes(per_volunteer)} ({minutes_to_hours(per_volunteer)}h)",
                    "inline": True
                })
        else:
            fields.append({
                "name": "⏱️ Estimated Time",
                "value": f"{format_minutes(task.estimated_minutes)} "
                         f"({minutes_to_hours(task.estimated_minutes)}h)",
                "inline": True
            })

        embed = {
            "title": title,
            "description": task.title if event.kind == NotificationKind.COMPLETED else task.description,
            "url": self.task_url(task),
            "color": GREEN if event.kind == NotificationKind.COMPLETED else BLURPLE,
            "fields": fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "footer": {"text": self.board_name},
        }
        if event.kind == NotificationKind.CREATED and event.actor is not None:
            embed["author"] = {"name": f"Created by {event.actor.display_name}"}
        if task.image:
            embed["thumbnail"] = {"url": task.image}

        return {"content": content, "embeds": [embed]}

    def _direct_message(self, event: NotificationEvent, content: str, title: str) -> Dict[str, Any]:
        recipient = event.recipient
        if recipient is None:
            raise NotificationError("Direct message has no recipient")

        task = event.task
        description = task.description or "No description"
        if len(description) > 500:
            description = description[:500] + "..."

        fields = [
            {"name": "📝 Task Description", "value": description, "inline": False},
            {"name": "🏷️ Zone", "value": task.zone.value, "inline": True},
        ]
        if event.minutes_per_volunteer is not None:
            fields.append({
                "name": "⏱️ Time You Spent",
                "value": f"{format_minutes(event.minutes_per_volunteer)} "
                         f"({minutes_to_hours(event.minutes_per_volunteer)}h)",
                "inline": True
            })
        fields.append({
            "name": "✨ What's Next?",
            "value": "Your contribution has been recorded! Check your profile to see your updated stats.",
            "inline": False
        })

        embed = {
            "title": title,
            "description": f"**{task.title}**",
            "url": self.task_url(task),
            "color": GREEN,
            "fields": fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "footer": {"text": self.board_name},
        }
        return {
            "content": content,
            "embeds": [embed],
            "recipient": {"volunteer_id": recipient.id, "external_ref": recipient.external_ref},
        }

    async def _delivery_worker(self, worker_name: str):
        """Worker process for delivering announcements"""
        logger.info(f"Notifier delivery worker {worker_name} started")

        while self.running:
            try:
                payload, trace_context = await asyncio.wait_for(self.delivery_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            # Delivery logs carry the trace id of the request that announced
            tracing.set_trace_context(**trace_context)

            try:
                await self._post(payload)
                self.stats["delivered"] += 1
            except Exception as e:
                self.stats["failed"] += 1
                logger.error(f"Announcement delivery abandoned by {worker_name}: {e}")
            finally:
                self.delivery_queue.task_done()

        logger.info(f"Notifier delivery worker {worker_name} stopped")

    async def _post_once(self, payload: Dict[str, Any]):
        start_time = time.time()
        timeout = aiohttp.ClientTimeout(total=settings.NOTIFY_TIMEOUT_SECONDS)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                self.dm_webhook_url if "recipient" in payload else self.webhook_url,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json", "User-Agent": "VolunteerBoard/1.0"}
            ) as response:
                response.raise_for_status()
                response_time = int((time.time() - start_time) * 1000)
                logger.info(f"Announcement delivered: {response.status} in {response_time}ms")

    @staticmethod
    def _is_permanent(error: Exception) -> bool:
        # 4xx other than rate limiting will not succeed on retry
        return (
            isinstance(error, aiohttp.ClientResponseError)
            and 400 <= error.status < 500
            and error.status != 429
        )

    @staticmethod
    def _log_backoff(details):
        logger.warning(
            f"Announcement delivery attempt {details['tries']} failed, "
            f"retrying in {details['wait']:.1f}s"
        )


async def announce_best_effort(
    notifier: Optional[NotificationDispatcher],
    event: NotificationEvent,
    timeout: float = None
) -> bool:
    """
    Announce ``event`` without letting a failure or a slow dispatcher reach
    the caller. Returns whether the dispatcher accepted the event.
    """
    if notifier is None:
        return False

    timeout = timeout or settings.NOTIFY_TIMEOUT_SECONDS
    try:
        await asyncio.wait_for(notifier.announce(event), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        failure = NotificationFailure(event.kind.value, event.task.id, f"timed out after {timeout}s")
    except Exception as e:
        failure = NotificationFailure(event.kind.value, event.task.id, str(e))

    NOTIFICATION_FAILURES.labels(kind=event.kind.value).inc()
    logger.warning(str(failure))
    return False
