"""Selection criteria for the message listing and their query-string form."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from urllib.parse import quote

from .config import task_name
from .models import INBOX, OUTBOX
from .utils import isoformat_utc


def local_today() -> datetime:
    """Local midnight of the current day (naive, local time)."""
    now = datetime.now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class MessagesFilter:
    """Canonical server-side filter for `GET messages`.

    Build it from human criteria with :meth:`from_criteria`; render it with
    :meth:`build_query`. Keys always render in the same order so equal
    filters produce equal queries.
    """

    task: str | None = None
    min_date_time: datetime | None = None
    max_date_time: datetime | None = None
    min_size: int | None = None
    max_size: int | None = None
    type: str | None = None
    status: str | None = None
    page: int | None = None

    @classmethod
    def from_criteria(
        cls,
        task: str | None = None,
        *,
        before: int | None = None,
        days: int | None = None,
        day: int | None = None,
        min_date_time: datetime | None = None,
        max_date_time: datetime | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        inbox: bool = False,
        outbox: bool = False,
        status: str | None = None,
        page: int | None = None,
        today: datetime | None = None,
    ) -> MessagesFilter:
        """Resolve relative day selectors against `today`.

        `day` (exactly N days ago) wins over everything and selects
        `[today - N, today - N + 1)`. Otherwise `days` (last N days) replaces
        `min_date_time` and `before` (older than N days) replaces
        `max_date_time`.
        """
        today = today or local_today()
        if day is not None:
            start = today - timedelta(days=day)
            min_date_time, max_date_time = start, start + timedelta(days=1)
        else:
            if days is not None:
                min_date_time = today - timedelta(days=days)
            if before is not None:
                max_date_time = today - timedelta(days=before)

        if inbox == outbox:
            message_type = None
        else:
            message_type = INBOX if inbox else OUTBOX

        return cls(
            task=task,
            min_date_time=min_date_time,
            max_date_time=max_date_time,
            min_size=min_size,
            max_size=max_size,
            type=message_type,
            status=status,
            page=page,
        )

    def tasks(self) -> list[str | None]:
        """Split a comma-separated task selector into single-task values."""
        if not self.task or "," not in self.task:
            return [self.task]
        return [item.strip() for item in self.task.split(",") if item.strip()]

    def for_task(self, task: str | None) -> MessagesFilter:
        return replace(self, task=task, page=None)

    def query_pairs(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        if self.task:
            pairs.append(("Task", task_name(self.task)))
        if self.min_date_time is not None:
            pairs.append(("MinDateTime", isoformat_utc(self.min_date_time)))
        if self.max_date_time is not None:
            pairs.append(("MaxDateTime", isoformat_utc(self.max_date_time)))
        if self.min_size is not None:
            pairs.append(("MinSize", str(self.min_size)))
        if self.max_size is not None:
            pairs.append(("MaxSize", str(self.max_size)))
        if self.type is not None:
            pairs.append(("Type", self.type))
        if self.status is not None:
            pairs.append(("Status", self.status))
        if self.page is not None and self.page > 1:
            pairs.append(("Page", str(self.page)))
        return pairs

    def build_query(self) -> str:
        """`?Task=...&MinDateTime=...` or an empty string."""
        pairs = self.query_pairs()
        if not pairs:
            return ""
        return "?" + "&".join(f"{key}={quote(value, safe=':_-')}" for key, value in pairs)

    def is_empty(self) -> bool:
        """True when the rendered query selects nothing, i.e. everything.

        The page cursor is not a selector, so a page-only filter is empty.
        """
        return "=" not in replace(self, page=None).build_query()
