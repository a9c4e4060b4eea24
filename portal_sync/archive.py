"""Flat-directory archive that doubles as the download ledger."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import DirectoryCreationError
from .models import Message

logger = logging.getLogger(__name__)

TOMBSTONE_SUFFIX = ".err"
INBOX_LABEL = "Inbox"
OUTBOX_LABEL = "Outbox"


@dataclass(frozen=True)
class ArchiveEntry:
    """Paths of one message inside the archive."""

    manifest: Path
    bundle: Path

    @property
    def tombstone(self) -> Path:
        return self.bundle.with_name(self.bundle.name + TOMBSTONE_SUFFIX)

    @property
    def processed(self) -> bool:
        """A bundle or a tombstone means the message must not be fetched again."""
        return self.bundle.exists() or self.tombstone.exists()


class Archive:
    """Store manifests and bundles under `{root}/{type}/{task}/{yyyy-MM}/`.

    Presence of files is the only record kept: nothing is ever rewritten,
    and a `.zip.err` tombstone stops retries of a message the portal could
    not serve.
    """

    def __init__(self, zip_root: Path, doc_root: Path) -> None:
        self.zip_root = Path(zip_root).resolve()
        self.doc_root = Path(doc_root).resolve()

    def entry(self, message: Message) -> ArchiveEntry:
        folder = (
            self.zip_root
            / message.type
            / message.task_name
            / message.creation_date.strftime("%Y-%m")
        )
        ensure_directory(folder)
        stem = f"{message.creation_date:%Y-%m-%d}-{message.message_id}"
        return ArchiveEntry(folder / f"{stem}.json", folder / f"{stem}.zip")

    @staticmethod
    def write_manifest(entry: ArchiveEntry, message: Message) -> None:
        """Persist the server JSON of the message; raises OSError on failure."""
        if entry.manifest.exists():
            return
        payload = json.dumps(message.raw, ensure_ascii=False, indent=2)
        entry.manifest.write_text(payload, encoding="utf-8")
        logger.debug("Saved manifest %s", entry.manifest)

    @staticmethod
    def write_tombstone(entry: ArchiveEntry, reason: str) -> None:
        entry.tombstone.write_text(reason, encoding="utf-8")
        logger.warning("Tombstone written for %s: %s", entry.bundle.name, reason)


def ensure_directory(path: Path) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreationError(f"Could not create directory '{path}': {exc}") from exc
    return path


def doc_store(root: Path, message: Message, date: str, name: str) -> Path:
    """Folder for the extracted deliverables: `{root}/{Inbox|Outbox}/{yyyy-MM}/{name}`."""
    label = OUTBOX_LABEL if message.outbox else INBOX_LABEL
    return Path(root).resolve() / label / date[:7] / name
