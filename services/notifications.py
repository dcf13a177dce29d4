"""User-facing notices.

Components report things the user should see (rate limits, applied
recommendations, failed mutations) through a Notifier. Notices are kept in
a bounded buffer the API serves, and every notice is also logged.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


@dataclass
class Notice:
    """One message for the user."""

    level: NoticeLevel
    message: str
    created_at: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["level"] = self.level.value
        return data


class Notifier:
    """Bounded in-memory notice buffer.

    Example:
        >>> notifier = Notifier()
        >>> notifier.warning("Rate limited, retrying shortly")
        >>> notifier.recent(1)[0].message
        'Rate limited, retrying shortly'
    """

    def __init__(self, max_notices: int = 100) -> None:
        self._notices: deque[Notice] = deque(maxlen=max_notices)

    def notify(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(
            level=level,
            message=message,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._notices.append(notice)
        logger.log(_LOG_LEVELS[level], f"[notice] {message}")
        return notice

    def info(self, message: str) -> Notice:
        return self.notify(NoticeLevel.INFO, message)

    def success(self, message: str) -> Notice:
        return self.notify(NoticeLevel.SUCCESS, message)

    def warning(self, message: str) -> Notice:
        return self.notify(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.notify(NoticeLevel.ERROR, message)

    def recent(self, limit: Optional[int] = None) -> list[Notice]:
        """Most recent notices, newest last."""
        notices = list(self._notices)
        if limit is not None:
            notices = notices[-limit:] if limit > 0 else []
        return notices

    def clear(self) -> None:
        self._notices.clear()
