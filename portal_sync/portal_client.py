"""Portal REST helper focused on message listing, download and deletion."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterator

import requests
from requests import Response

from .config import Settings
from .errors import ApiRequestError, UnsafeFilterError
from .filters import MessagesFilter
from .models import (
    MAX_PER_PAGE,
    ApiResult,
    Message,
    MessageFile,
    MessageReceipt,
    MessagesPage,
    Pagination,
    Repository,
)
from .transport import ResilientTransport
from .utils import parse_portal_datetime

logger = logging.getLogger(__name__)

_CONTENT_RANGE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")


class PortalClient:
    """Thin wrapper over the portal REST API that returns ApiResult values."""

    def __init__(
        self,
        transport: ResilientTransport,
        api_url: str,
        chunk_size: int | None = 1048576,
    ) -> None:
        self.transport = transport
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: Settings, **transport_kwargs: Any) -> PortalClient:
        transport = ResilientTransport(
            auth=(settings.portal_username, settings.portal_password),
            timeout=settings.portal_timeout,
            deadline=settings.portal_retry_deadline,
            retry_delay=settings.portal_retry_delay,
            cooldown=settings.portal_cooldown,
            **transport_kwargs,
        )
        return cls(transport, settings.api_url, settings.chunk_size)

    # Listing

    def get_messages_page(self, messages_filter: MessagesFilter) -> ApiResult[MessagesPage]:
        url = f"{self.api_url}messages{messages_filter.build_query()}"
        logger.debug("Fetching portal messages page %s", url)
        try:
            response = self.transport.get(url)
        except requests.RequestException as exc:
            return ApiResult.from_exception(exc)
        if response.status_code != 200:
            return ApiResult.from_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            return ApiResult.from_exception(exc, "Messages page is not JSON.")
        return ApiResult.success(self._to_page(payload, response.headers))

    def iter_messages(self, messages_filter: MessagesFilter) -> Iterator[Message]:
        """Yield every message matching the filter, page by page.

        A comma-separated task selector is walked one task at a time. A page
        that cannot be fetched raises ApiRequestError; messages already yielded
        stay yielded.
        """
        for task in messages_filter.tasks():
            if task == messages_filter.task:
                current = replace(messages_filter)
            else:
                current = messages_filter.for_task(task)
            while True:
                page = self.get_messages_page(current).unwrap()
                yield from page.messages
                pages = page.pages
                if not page.messages or pages.current_page >= pages.total_pages:
                    break
                current.page = pages.current_page + 1
                logger.debug("Advancing to page %s of %s", current.page, pages.total_pages)

    def get_messages(self, messages_filter: MessagesFilter) -> ApiResult[list[Message]]:
        try:
            return ApiResult.success(list(self.iter_messages(messages_filter)))
        except ApiRequestError as exc:
            return ApiResult.failure(exc.error)

    # Single message

    def get_message(self, message_id: str) -> ApiResult[Message]:
        result = self.get_message_json(message_id)
        if not result.ok:
            return ApiResult.failure(result.error)
        return ApiResult.success(self._to_message(result.data))

    def get_message_json(self, message_id: str) -> ApiResult[dict]:
        url = f"{self.api_url}messages/{message_id}"
        try:
            response = self.transport.get(url)
        except requests.RequestException as exc:
            return ApiResult.from_exception(exc)
        if response.status_code != 200:
            return ApiResult.from_response(response)
        try:
            return ApiResult.success(response.json())
        except ValueError as exc:
            return ApiResult.from_exception(exc, f"Message '{message_id}' is not JSON.")

    def get_receipts(self, message_id: str) -> ApiResult[list[MessageReceipt]]:
        url = f"{self.api_url}messages/{message_id}/receipts"
        try:
            response = self.transport.get(url)
        except requests.RequestException as exc:
            return ApiResult.from_exception(exc)
        if response.status_code != 200:
            return ApiResult.from_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            return ApiResult.from_exception(exc, f"Receipts of '{message_id}' are not JSON.")
        return ApiResult.success([self._to_receipt(raw) for raw in payload or []])

    def download_message_zip(self, message_id: str, path: Path, overwrite: bool = False) -> ApiResult[Path]:
        return self.download(f"{self.api_url}messages/{message_id}/download", path, overwrite)

    def download_message_file(
        self, message_id: str, file_id: str, path: Path, overwrite: bool = False
    ) -> ApiResult[Path]:
        return self.download(
            f"{self.api_url}messages/{message_id}/files/{file_id}/download", path, overwrite
        )

    # Deletion

    def delete_message(self, message_id: str) -> ApiResult[bool]:
        url = f"{self.api_url}messages/{message_id}"
        try:
            response = self.transport.delete(url)
        except requests.RequestException as exc:
            return ApiResult.from_exception(exc)
        if response.status_code != 200:
            return ApiResult.from_response(response)
        return ApiResult.success(True)

    def delete_messages(self, messages_filter: MessagesFilter) -> ApiResult[int]:
        """Delete everything the filter selects; refuse an empty filter."""
        if messages_filter.is_empty():
            raise UnsafeFilterError("No message filter given for a bulk delete; refusing to delete everything.")
        listed = self.get_messages(messages_filter)
        if not listed.ok:
            return ApiResult.failure(listed.error)
        deleted = 0
        failed = 0
        for message in listed.data:
            if self.delete_message(message.message_id).ok:
                deleted += 1
            else:
                failed += 1
        logger.info("Deleted %s messages, %s failed", deleted, failed)
        if failed:
            return ApiResult.failure(f"Deleted {deleted} of {deleted + failed} messages.")
        return ApiResult.success(deleted)

    # Download helpers

    def download(self, url: str, path: Path, overwrite: bool = False) -> ApiResult[Path]:
        """Stream `url` into `path`, in ranged chunks when chunk_size is set."""
        path = Path(path)
        if path.exists():
            if not overwrite:
                logger.debug("%s already exists, download skipped", path)
                return ApiResult.success(path)
            path.unlink()
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = self._download_chunks(url, path)
        except (requests.RequestException, OSError) as exc:
            result = ApiResult.from_exception(exc, f"Download of {path.name} failed.")
        if not result.ok and path.exists():
            path.unlink()
        return result

    def _download_chunks(self, url: str, path: Path) -> ApiResult[Path]:
        if self.chunk_size is None:
            response = self.transport.get(url, stream=True)
        else:
            response = self.transport.get_partial(url, 0, self.chunk_size - 1, stream=True)

        if response.status_code == 200:
            with path.open("wb") as handle:
                self._copy_body(response, handle)
            return ApiResult.success(path)
        if response.status_code != 206:
            response.close()
            return ApiResult.from_response(response)

        total = self._total_size(response)
        if total is None:
            response.close()
            return ApiResult.failure("Partial response without a usable Content-Range header.")
        with path.open("wb") as handle:
            written = self._copy_body(response, handle)
            while written < total:
                to_byte = min(written + self.chunk_size, total) - 1
                part = self.transport.get_partial(url, written, to_byte, stream=True)
                if part.status_code != 206:
                    part.close()
                    return ApiResult.from_response(part)
                received = self._copy_body(part, handle)
                if received == 0:
                    return ApiResult.failure(f"Empty partial response at byte {written} of {total}.")
                written += received
        return ApiResult.success(path)

    @staticmethod
    def _copy_body(response: Response, handle) -> int:
        written = 0
        try:
            for chunk in response.iter_content(chunk_size=65536):
                if chunk:
                    handle.write(chunk)
                    written += len(chunk)
        finally:
            response.close()
        return written

    @staticmethod
    def _total_size(response: Response) -> int | None:
        match = _CONTENT_RANGE.match(response.headers.get("Content-Range", ""))
        if not match or match.group(3) == "*":
            return None
        return int(match.group(3))

    # Parsing

    @classmethod
    def _to_page(cls, payload: Any, headers) -> MessagesPage:
        if isinstance(payload, dict):
            raw_messages = payload.get("Messages") or payload.get("messages") or []
            info = payload.get("PaginationInfo") or payload.get("Pages") or {}
            pages = cls._to_pagination(info.get, len(raw_messages))
        else:
            raw_messages = payload or []
            pages = cls._to_pagination(lambda key: headers.get(f"EPVV-{key}"), len(raw_messages))
        return MessagesPage([cls._to_message(raw) for raw in raw_messages], pages)

    @staticmethod
    def _to_pagination(lookup, count: int) -> Pagination:
        def value(*keys: str) -> int | None:
            for key in keys:
                raw = lookup(key)
                if raw is None or raw == "":
                    continue
                try:
                    return int(raw)
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed pagination value %s=%r", key, raw)
            return None

        return Pagination(
            total_records=value("TotalRecords", "Total") or 0,
            total_pages=value("TotalPages") or 0,
            current_page=value("CurrentPage") or 0,
            per_current_page=value("PerCurrentPage") or count,
            per_next_page=value("PerNextPage"),
            max_per_page=value("MaxPerPage") or MAX_PER_PAGE,
        )

    @classmethod
    def _to_message(cls, raw: dict) -> Message:
        return Message(
            message_id=raw["Id"],
            correlation_id=raw.get("CorrelationId"),
            group_id=raw.get("GroupId"),
            type=raw.get("Type", ""),
            title=raw.get("Title"),
            text=raw.get("Text"),
            creation_date=parse_portal_datetime(raw["CreationDate"]),
            updated_date=parse_portal_datetime(raw.get("UpdatedDate")),
            status=raw.get("Status", ""),
            task_name=raw.get("TaskName", ""),
            reg_number=raw.get("RegNumber"),
            total_size=raw.get("TotalSize"),
            files=[cls._to_file(item) for item in raw.get("Files") or []],
            receipts=[cls._to_receipt(item) for item in raw.get("Receipts") or []],
            raw=raw,
        )

    @classmethod
    def _to_receipt(cls, raw: dict) -> MessageReceipt:
        return MessageReceipt(
            receipt_id=raw.get("Id", ""),
            status=raw.get("Status", ""),
            receive_time=parse_portal_datetime(raw.get("ReceiveTime")),
            status_time=parse_portal_datetime(raw.get("StatusTime")),
            message=raw.get("Message"),
            files=[cls._to_file(item) for item in raw.get("Files") or []],
        )

    @staticmethod
    def _to_file(raw: dict) -> MessageFile:
        return MessageFile(
            file_id=raw["Id"],
            name=raw.get("Name", ""),
            description=raw.get("Description"),
            encrypted=bool(raw.get("Encrypted", False)),
            signed_file=raw.get("SignedFile"),
            repository_type=raw.get("RepositoryType"),
            size=raw.get("Size") or 0,
            repository_info=[
                Repository(
                    repository_type=item.get("RepositoryType"),
                    host=item.get("Host"),
                    port=item.get("Port"),
                    check_sum=item.get("CheckSum"),
                    check_sum_type=item.get("CheckSumType"),
                    path=item.get("Path"),
                )
                for item in raw.get("RepositoryInfo") or []
            ],
        )
