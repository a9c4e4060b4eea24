"""Turn downloaded message files into plaintext deliverables."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .archive import doc_store, ensure_directory
from .crypto import CryptoService
from .errors import CryptoError
from .message_info import MessageInfo, form_file_name
from .models import Message, MessageFile
from .portal_client import PortalClient
from .utils import strip_suffix

logger = logging.getLogger(__name__)

ENCRYPTED_SUFFIX = ".enc"
SIGNED_SUFFIX = ".sig"


class ExtractionPipeline:
    """Decrypt, strip signatures and move message files into the document store.

    Per-file problems end up as notes in `info.txt`; the only failure raised
    is DirectoryCreationError for a destination that cannot be created.
    """

    def __init__(self, client: PortalClient, crypto: CryptoService) -> None:
        self.client = client
        self.crypto = crypto

    def extract_message(self, message: Message, source_dir: Path, dest_dir: Path) -> MessageInfo:
        """Extract every file of `message` found in `source_dir`.

        Deliverables land in `{dest_dir}/{Inbox|Outbox}/{yyyy-MM}/{name}`
        where the name comes from the message form.
        """
        source_dir = Path(source_dir)
        info = MessageInfo.from_message(message, self._prepare_form(message, source_dir))
        self._describe_correlated(message, info)

        folder = ensure_directory(doc_store(dest_dir, message, info.date, info.name))
        info.folder = folder
        logger.info("Extracting message %s into %s", message.message_id, folder)

        for item in message.files:
            if item.is_signature:
                logger.debug("Skipping signature %s", item.name)
                continue
            src = source_dir / item.name
            if not src.exists() and not self._redownload(message, item, src):
                info.add_note(f"File '{item.name}' could not be downloaded.")
                continue
            if item.encrypted or _is_wrapped(src):
                self.extract_file(src, folder, info.notes)
            else:
                _move_into(src, folder)

        info.write(folder)
        return info

    def extract_file(self, path: Path, dest_dir: Path, notes: Optional[list[str]] = None) -> Path:
        """Decrypt `.enc`, clean-sign `.sig` and move the result into `dest_dir`.

        A failed step keeps its input and the input is moved instead.
        """
        notes = notes if notes is not None else []
        path = Path(path)
        if path.name.lower().endswith(ENCRYPTED_SUFFIX):
            path = self._unwrap(path, ENCRYPTED_SUFFIX, self.crypto.decrypt, "decrypt", notes)
        if path.name.lower().endswith(SIGNED_SUFFIX):
            path = self._unwrap(path, SIGNED_SUFFIX, self.crypto.clean_sign, "remove the signature from", notes)
        return _move_into(path, ensure_directory(Path(dest_dir)))

    def _unwrap(self, path: Path, suffix: str, operation, verb: str, notes: list[str]) -> Path:
        target = path.with_name(strip_suffix(path.name, suffix))
        if target.exists():
            path.unlink()
            return target
        try:
            done = operation(path, target)
        except CryptoError as exc:
            logger.error("Could not %s %s: %s", verb, path.name, exc)
            done = False
        if done:
            path.unlink()
            return target
        logger.warning("Could not %s %s, keeping it as is", verb, path.name)
        notes.append(f"Could not {verb} '{path.name}'.")
        return path

    def _prepare_form(self, message: Message, source_dir: Path) -> Path:
        form = source_dir / form_file_name(message)
        encrypted = form.with_name(form.name + ENCRYPTED_SUFFIX)
        if not form.exists() and encrypted.exists():
            try:
                self.crypto.decrypt(encrypted, form)
            except CryptoError as exc:
                logger.warning("Could not decrypt %s: %s", encrypted.name, exc)
        return form

    def _describe_correlated(self, message: Message, info: MessageInfo) -> None:
        if not message.correlation_id:
            return
        result = self.client.get_message(message.correlation_id)
        if not result.ok:
            logger.warning("Correlated message %s not available", message.correlation_id)
            return
        replied = MessageInfo.from_message(result.data)
        info.add_note("In reply to " + replied.render())

    def _redownload(self, message: Message, item: MessageFile, path: Path) -> bool:
        logger.warning("File %s is missing from the package, downloading it", item.name)
        result = self.client.download_message_file(message.message_id, item.file_id, path)
        if not result.ok or not path.exists():
            logger.error("File %s of message %s is not available", item.name, message.message_id)
            return False
        return True


def _is_wrapped(path: Path) -> bool:
    name = path.name.lower()
    return name.endswith(ENCRYPTED_SUFFIX) or name.endswith(SIGNED_SUFFIX)


def _move_into(path: Path, folder: Path) -> Path:
    target = folder / path.name
    if target.exists():
        target.unlink()
    shutil.move(str(path), str(target))
    return target
