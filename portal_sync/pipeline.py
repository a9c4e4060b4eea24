"""Download portal messages into the archive and extract their deliverables."""

from __future__ import annotations

import logging
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from .archive import Archive, ArchiveEntry
from .config import Settings, task_name
from .errors import DirectoryCreationError, TaskError
from .extraction import ExtractionPipeline
from .filters import MessagesFilter
from .message_info import MessageInfo
from .models import ApiResult, Message, Outcome
from .notifications import LogNotifier, Notifier
from .portal_client import PortalClient

logger = logging.getLogger(__name__)

VISUALISATION_PDF = "ВизуализацияЭД.PDF"


@dataclass
class Summary:
    """Totals of one batch run plus the text of the digest."""

    processed: int = 0
    errors: int = 0
    entries: list[str] = field(default_factory=list)

    @property
    def report(self) -> str:
        return "\n".join(self.entries)


class MessagePipeline:
    """Load messages one by one, never fetching an archived message twice."""

    def __init__(
        self,
        client: PortalClient,
        extraction: ExtractionPipeline,
        archive: Archive,
        notifier: Notifier | None = None,
        *,
        exclude_tasks: Iterable[str] = (),
        subscribers: Sequence[str] = (),
        delete_after_load: bool = False,
    ) -> None:
        self.client = client
        self.extraction = extraction
        self.archive = archive
        self.notifier = notifier or LogNotifier()
        self.exclude_tasks = {task_name(item) for item in exclude_tasks}
        self.subscribers = list(subscribers)
        self.delete_after_load = delete_after_load

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: PortalClient,
        extraction: ExtractionPipeline,
        notifier: Notifier | None = None,
    ) -> MessagePipeline:
        return cls(
            client,
            extraction,
            Archive(settings.zip_path, settings.doc_path),
            notifier,
            exclude_tasks=settings.exclude_tasks,
            subscribers=settings.notify_subscribers,
            delete_after_load=settings.delete_after_load,
        )

    def process_one(self, message_id: str) -> Outcome:
        """Load a single message by id, notifying about it right away."""
        result = self.client.get_message(message_id)
        if not result.ok:
            raise TaskError(f"Message '{message_id}' not found: {result.error.error_message}")
        message = result.data
        entry = self.archive.entry(message)
        try:
            self.archive.write_manifest(entry, message)
        except OSError as exc:
            raise TaskError(f"Could not save '{entry.manifest}': {exc}") from exc
        if entry.processed:
            raise TaskError(f"'{entry.bundle}' is already archived.")

        outcome, info = self._load(message, entry)
        if info is not None:
            self._notify(message, info)
        return outcome

    def process_filtered(self, messages_filter: MessagesFilter, notify_per_message: bool = False) -> Summary:
        """Load everything the filter selects; one failure never stops the batch.

        Listing failures propagate as ApiRequestError.
        """
        summary = Summary()
        for message in self.client.iter_messages(messages_filter):
            skipped = self._skip(message)
            if skipped is not None:
                logger.debug("Skipping %s: %s", message.message_id, skipped.detail)
                continue

            try:
                entry = self.archive.entry(message)
            except DirectoryCreationError as exc:
                logger.error("Could not archive %s: %s", message.message_id, exc)
                summary.errors += 1
                continue
            try:
                self.archive.write_manifest(entry, message)
            except OSError as exc:
                logger.error("Could not save manifest of %s: %s", message.message_id, exc)
                summary.errors += 1
                continue
            if entry.processed:
                continue

            outcome, info = self._load(message, entry)
            summary.processed += 1
            text = info.render() if info is not None else outcome.detail
            if outcome.failed:
                summary.errors += 1
                summary.entries.append(f"-{summary.processed} not downloaded-\n{text}\n")
            else:
                summary.entries.append(f"-{summary.processed}-\n{text}\n")
            if notify_per_message and info is not None:
                self._notify(message, info)

        logger.info("Loaded %s messages, errors %s", summary.processed, summary.errors)
        if not notify_per_message:
            self.notifier.send(
                f"Portal: loaded {summary.processed}, errors {summary.errors}",
                summary.report,
                self.subscribers,
            )
        return summary

    def delete_filtered(self, messages_filter: MessagesFilter) -> ApiResult[int]:
        """Bulk delete on the portal; an empty filter raises UnsafeFilterError."""
        return self.client.delete_messages(messages_filter)

    def _skip(self, message: Message) -> Outcome | None:
        if message.outbox and not message.accepted:
            return Outcome.skipped(f"outbox message in status {message.status}")
        if message.task_name in self.exclude_tasks:
            return Outcome.skipped(f"task {message.task_name} excluded")
        return None

    def _load(self, message: Message, entry: ArchiveEntry) -> tuple[Outcome, MessageInfo | None]:
        try:
            result = self.client.download_message_zip(message.message_id, entry.bundle)
            if result.ok:
                try:
                    info = self._extract_bundle(message, entry.bundle)
                except zipfile.BadZipFile as exc:
                    entry.bundle.unlink()
                    reason = f"Bundle of message '{message.message_id}' is not a valid zip: {exc}"
                else:
                    self._delete_loaded(message)
                    return Outcome.ok(info.name), info
            else:
                reason = f"Bundle of message '{message.message_id}' could not be downloaded."
            logger.warning("%s Falling back to single files.", reason)
            info = self._extract_files(message, reason)
        except DirectoryCreationError as exc:
            logger.error("Message %s failed: %s", message.message_id, exc)
            if entry.bundle.exists():
                entry.bundle.unlink()
            return Outcome.fatal(str(exc)), None
        self.archive.write_tombstone(entry, reason)
        return Outcome.recoverable(reason), info

    def _extract_bundle(self, message: Message, bundle: Path) -> MessageInfo:
        with tempfile.TemporaryDirectory(prefix="portal-sync-") as temp:
            with zipfile.ZipFile(bundle) as archive:
                archive.extractall(temp)
            folders = [item for item in Path(temp).iterdir() if item.is_dir()]
            source = folders[0] if len(folders) == 1 else Path(temp)
            return self.extraction.extract_message(message, source, self.archive.doc_root)

    def _extract_files(self, message: Message, reason: str) -> MessageInfo:
        """Fallback when the bundle is unavailable: fetch each file on its own."""
        with tempfile.TemporaryDirectory(prefix="portal-sync-") as temp:
            for item in message.files:
                path = Path(temp) / item.name
                if not self.client.download_message_file(message.message_id, item.file_id, path).ok:
                    logger.error("File %s of message %s not downloaded", item.name, message.message_id)
            info = self.extraction.extract_message(message, Path(temp), self.archive.doc_root)
        info.add_note(reason)
        info.write(info.folder)
        return info

    def _delete_loaded(self, message: Message) -> None:
        if not self.delete_after_load:
            return
        result = self.client.delete_message(message.message_id)
        if result.ok:
            logger.info("Deleted %s from the portal", message.message_id)
        else:
            logger.warning("Could not delete %s: %s", message.message_id, result.error.error_message)

    def _notify(self, message: Message, info: MessageInfo) -> None:
        if message.inbox:
            self.notifier.send(
                f"Portal inbox: {info.subject}",
                info.render(),
                self.subscribers,
                _pdf_attachments(info.folder),
            )
        else:
            self.notifier.send(f"Portal outbox: {info.subject}", info.render(), self.subscribers)


def _pdf_attachments(folder: Path | None) -> list[Path]:
    if folder is None:
        return []
    visualisation = folder / VISUALISATION_PDF
    if visualisation.exists():
        return [visualisation]
    return sorted(item for item in folder.iterdir() if item.suffix.lower() == ".pdf")
