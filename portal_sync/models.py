"""Typed containers shared across the pipeline."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

import requests

from .errors import ApiRequestError

logger = logging.getLogger(__name__)

T = TypeVar("T")

INBOX = "inbox"
OUTBOX = "outbox"

# Outbound message and receipt statuses.
DRAFT = "draft"
SENT = "sent"
DELIVERED = "delivered"
ERROR = "error"
PROCESSING = "processing"
REGISTERED = "registered"
REJECTED = "rejected"
SUCCESS = "success"

# Inbound message statuses.
NEW = "new"
READ = "read"
REPLIED = "replied"

OUTBOX_STATUSES = (DRAFT, SENT, DELIVERED, ERROR, PROCESSING, REGISTERED, REJECTED, SUCCESS)
INBOX_STATUSES = (NEW, READ, REPLIED)
TERMINAL_STATUSES = (REGISTERED, SUCCESS, ERROR, REJECTED)

MAX_PER_PAGE = 100


@dataclass
class Repository:
    """Where the portal stores one copy of a file."""

    repository_type: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    check_sum: Optional[str] = None
    check_sum_type: Optional[str] = None
    path: Optional[str] = None


@dataclass
class MessageFile:
    """Metadata for a file attached to a message or receipt."""

    file_id: str
    name: str
    encrypted: bool = False
    signed_file: Optional[str] = None
    size: int = 0
    description: Optional[str] = None
    repository_type: Optional[str] = None
    repository_info: list[Repository] = field(default_factory=list)

    @property
    def is_signature(self) -> bool:
        """Detached signature over another file of the same message."""
        return self.signed_file is not None


@dataclass
class MessageReceipt:
    """One step of the processing trail of an outbound message."""

    receipt_id: str
    status: str
    receive_time: Optional[datetime] = None
    status_time: Optional[datetime] = None
    message: Optional[str] = None
    files: list[MessageFile] = field(default_factory=list)


@dataclass
class Message:
    """Essential metadata about a portal message."""

    message_id: str
    type: str
    status: str
    task_name: str
    creation_date: datetime
    correlation_id: Optional[str] = None
    group_id: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    updated_date: Optional[datetime] = None
    reg_number: Optional[str] = None
    total_size: Optional[int] = None
    files: list[MessageFile] = field(default_factory=list)
    receipts: list[MessageReceipt] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def inbox(self) -> bool:
        return self.type == INBOX

    @property
    def outbox(self) -> bool:
        return self.type == OUTBOX

    @property
    def registered(self) -> bool:
        return self.status == REGISTERED

    @property
    def success(self) -> bool:
        return self.status == SUCCESS

    @property
    def accepted(self) -> bool:
        """Outbound message durably accepted by the portal."""
        return self.registered or self.success


@dataclass
class Pagination:
    """Paging counters of one listing response."""

    total_records: int
    total_pages: int
    current_page: int
    per_current_page: Optional[int] = None
    per_next_page: Optional[int] = None
    max_per_page: int = MAX_PER_PAGE


@dataclass
class MessagesPage:
    messages: list[Message]
    pages: Pagination


@dataclass
class ApiError:
    """Structured error reported by the portal (or synthesised locally)."""

    http_status: int
    error_code: str
    error_message: str
    more_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class ApiResult(Generic[T]):
    """Either a value or an ApiError, never both."""

    ok: bool
    data: Optional[T] = None
    error: Optional[ApiError] = None

    @classmethod
    def success(cls, data: T) -> ApiResult[T]:
        return cls(True, data)

    @classmethod
    def failure(cls, error: ApiError | str) -> ApiResult[T]:
        if isinstance(error, str):
            error = ApiError(0, "API Error", error)
        logger.info("HTTP %s, %s, %s", error.http_status, error.error_code, error.error_message)
        return cls(False, None, error)

    @classmethod
    def from_response(cls, response: requests.Response) -> ApiResult[T]:
        """Read the portal error body, falling back to the HTTP reason."""
        error = ApiError(response.status_code, str(response.reason or "HTTP Error"), response.text or "")
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            lowered = {key.lower(): value for key, value in payload.items()}
            error = ApiError(
                _status_code(lowered.get("httpstatus"), response.status_code),
                str(lowered.get("errorcode") or error.error_code),
                str(lowered.get("errormessage") or error.error_message),
                lowered.get("moreinfo") or {},
            )
        return cls.failure(error)

    @classmethod
    def from_exception(cls, exc: Exception, message: str | None = None) -> ApiResult[T]:
        text = f"{message} {exc}" if message else str(exc)
        if isinstance(exc, requests.Timeout):
            error = ApiError(0, "Timeout", "Request timed out")
        elif isinstance(exc, json.JSONDecodeError):
            error = ApiError(0, "JSON Error", text)
        elif isinstance(exc, requests.RequestException):
            error = ApiError(0, "Network Error", text)
        else:
            error = ApiError(0, "Unexpected Error", text)
        return cls.failure(error)

    def unwrap(self) -> T:
        """Return the value or raise ApiRequestError."""
        if not self.ok:
            raise ApiRequestError(self.error or ApiError(0, "API Error", "Unknown error"))
        return self.data  # type: ignore[return-value]


@dataclass
class Outcome:
    """Result of processing one message inside a batch."""

    kind: str
    detail: str = ""

    OK = "ok"
    SKIPPED = "skipped"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"

    @classmethod
    def ok(cls, detail: str = "") -> Outcome:
        return cls(cls.OK, detail)

    @classmethod
    def skipped(cls, detail: str = "") -> Outcome:
        return cls(cls.SKIPPED, detail)

    @classmethod
    def recoverable(cls, reason: str) -> Outcome:
        return cls(cls.RECOVERABLE, reason)

    @classmethod
    def fatal(cls, reason: str) -> Outcome:
        return cls(cls.FATAL, reason)

    @property
    def failed(self) -> bool:
        return self.kind in (self.RECOVERABLE, self.FATAL)


def _status_code(value: Any, fallback: int) -> int:
    try:
        return int(value) if value not in (None, "") else fallback
    except (TypeError, ValueError):
        return fallback
