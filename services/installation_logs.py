from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

DEFAULT_MAX_ENTRIES = 10


@dataclass(frozen=True)
class InstallationLog:
    shop: str
    auth_url: str
    status: str  # "success" | "error"
    message: str
    backend_response: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class InstallationLogStore:
    """
    Bounded per-shop history of install-hook outcomes.

    One instance is created with the app and kept on `app.state`; entries
    live in process memory only and the oldest is dropped once a shop has
    `max_entries` of them.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.max_entries = max_entries
        self._logs: Dict[str, Deque[InstallationLog]] = {}

    def record(self, entry: InstallationLog) -> None:
        logs = self._logs.setdefault(entry.shop, deque(maxlen=self.max_entries))
        logs.append(entry)

    def get(self, shop: str) -> List[InstallationLog]:
        return list(self._logs.get(shop, ()))

    def clear(self, shop: str) -> None:
        self._logs.pop(shop, None)
