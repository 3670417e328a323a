import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

import httpx

from flight_extractor.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class ProgressUpdate:
    """Pushed after each batch job and once more when the batch ends."""
    completed: int
    total: int
    current_label: str = ""
    finished: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["percent"] = self.percent
        return data


class ProgressObserver(ABC):
    """Anything that wants to hear about batch progress."""

    @abstractmethod
    async def notify(self, update: ProgressUpdate) -> None:
        pass


class ProgressTracker(ProgressObserver):
    """In-memory progress for the status endpoint."""

    def __init__(self, max_history: int = 100):
        self.latest: Optional[ProgressUpdate] = None
        self.history: Deque[ProgressUpdate] = deque(maxlen=max_history)

    async def notify(self, update: ProgressUpdate) -> None:
        self.latest = update
        self.history.append(update)

    def snapshot(self) -> Dict[str, Any]:
        if self.latest is None:
            return {"completed": 0, "total": 0, "current_label": "", "finished": False, "percent": 0}
        return self.latest.to_dict()

    def reset(self) -> None:
        self.latest = None
        self.history.clear()


class NtfyProgressNotifier(ProgressObserver):
    """
    Push progress to an ntfy topic.

    Disabled when no topic is configured. Delivery failures are logged and
    never interrupt the batch.
    """

    def __init__(self, ntfy_url: Optional[str] = None, ntfy_topic: Optional[str] = None):
        self.ntfy_url = ntfy_url or settings.ntfy_url
        self.ntfy_topic = ntfy_topic if ntfy_topic is not None else settings.ntfy_topic
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self.ntfy_topic)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def notify(self, update: ProgressUpdate) -> None:
        if not self.enabled:
            return

        if update.finished:
            title = "Batch complete"
            message = f"All {update.total} route-date combinations processed"
            tags = ["white_check_mark"]
        else:
            title = f"Batch {update.completed}/{update.total}"
            message = f"Finished {update.current_label}"
            tags = ["airplane"]

        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.ntfy_url}/{self.ntfy_topic}",
                content=message,
                headers={"Title": title, "Tags": ",".join(tags), "Priority": "2"},
            )
            if response.status_code != 200:
                logger.error(f"ntfy returned {response.status_code}: {response.text}")
        except httpx.ConnectError as e:
            logger.warning(f"Could not connect to ntfy server at {self.ntfy_url}: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send progress notification: {e}")


class ProgressBroadcaster(ProgressObserver):
    """Fans one update out to several observers."""

    def __init__(self, observers: List[ProgressObserver]):
        self.observers = observers

    async def notify(self, update: ProgressUpdate) -> None:
        for observer in self.observers:
            try:
                await observer.notify(update)
            except Exception as e:
                logger.error(f"Progress observer {type(observer).__name__} failed: {e}")
