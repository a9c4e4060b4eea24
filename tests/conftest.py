"""Shared fakes for portal sync tests."""
from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from portal_sync.portal_client import PortalClient
from portal_sync.transport import ResilientTransport


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_response(
    status: int = 200,
    payload: Any = None,
    *,
    content: bytes | None = None,
    headers: dict[str, str] | None = None,
    reason: str = "",
) -> requests.Response:
    """Build a real Response with an in-memory body."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason or ("OK" if status < 400 else "Error")
    response.headers = CaseInsensitiveDict(headers or {})
    if content is None:
        content = b"" if payload is None else json.dumps(payload).encode("utf-8")
    response._content = content
    response._content_consumed = True
    response.encoding = "utf-8"
    return response


def message_payload(
    message_id: str = "11111111-2222-3333-4444-555555555555",
    *,
    type: str = "inbox",
    status: str = "new",
    task: str = "Zadacha_130",
    created: str = "2024-03-05T10:00:00Z",
    files: list[dict] | None = None,
    **extra: Any,
) -> dict:
    payload = {
        "Id": message_id,
        "Type": type,
        "Status": status,
        "TaskName": task,
        "CreationDate": created,
        "Title": "Request for information",
        "Text": "Quarterly report",
        "Files": files or [],
        "Receipts": [],
    }
    payload.update(extra)
    return payload


def file_payload(file_id: str, name: str, *, encrypted: bool = False, signed_file: str | None = None, size: int = 10) -> dict:
    return {
        "Id": file_id,
        "Name": name,
        "Encrypted": encrypted,
        "SignedFile": signed_file,
        "Size": size,
        "RepositoryType": "http",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session() -> MagicMock:
    fake = MagicMock(spec=requests.Session)
    fake.headers = {}
    return fake


@pytest.fixture
def transport(session: MagicMock, clock: FakeClock) -> ResilientTransport:
    return ResilientTransport(
        session,
        auth=("user", "secret"),
        deadline=600,
        retry_delay=2,
        cooldown=0,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def client(transport: ResilientTransport) -> PortalClient:
    return PortalClient(transport, "https://portal.example/back/rapi2/", chunk_size=None)
