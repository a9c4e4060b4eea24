"""Human-readable summary of one message, written next to its deliverables."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .models import Message
from .utils import format_file_size, safe_file_name

logger = logging.getLogger(__name__)

INFO_FILE_NAME = "info.txt"
INBOX_FORM = "passport.xml"
OUTBOX_FORM = "form.xml"


def form_file_name(message: Message) -> str:
    """Descriptor shipped with every message: passport for inbox, form for outbox."""
    return INBOX_FORM if message.inbox else OUTBOX_FORM


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find(root: ET.Element, name: str) -> ET.Element | None:
    for element in root.iter():
        if _local_name(element.tag) == name:
            return element
    return None


@dataclass
class MessageInfo:
    """Date, number and subject of a message, read from its form when present."""

    message: Message
    date: str
    number: str
    subject: str
    name: str
    notes: list[str] = field(default_factory=list)
    folder: Optional[Path] = None

    @classmethod
    def from_message(cls, message: Message, form_path: Path | None = None) -> MessageInfo:
        date: Optional[str] = None
        number: Optional[str] = None
        subject = " ".join(filter(None, (message.title, message.text, message.reg_number)))

        if form_path is not None and Path(form_path).exists():
            try:
                date, number, subject = cls._read_form(Path(form_path), message, subject)
            except (ET.ParseError, OSError) as exc:
                logger.warning("Could not read %s: %s", form_path, exc)

        date = date or message.creation_date.astimezone().strftime("%Y-%m-%d")
        number = number or message.reg_number or message.message_id[:8]
        subject = " ".join(subject.split())
        number_part = "-".join(number.split())
        name = safe_file_name(f"{date}-{number_part} {subject}")
        return cls(message, date, number, subject, name)

    @staticmethod
    def _read_form(path: Path, message: Message, subject: str) -> tuple[str | None, str | None, str]:
        root = ET.parse(path).getroot()
        if _local_name(root.tag) == "passport":
            node = _find(root, "RegNumer")
            document = _find(root, "document")
            date = number = None
            if node is not None:
                date = node.get("regdate")
                number = (node.text or "").strip() or None
            annotation = document.get("annotation") if document is not None else None
            return date, number, annotation or "Letter"

        node = _find(root, "doc_out")
        text = _find(root, "doc_text")
        date = node.get("Date") if node is not None else None
        number = node.get("Number") if node is not None else None
        if text is not None and (text.text or "").strip():
            subject = text.text
        else:
            subject = "Reply" if message.correlation_id else "Request"
        return date, number, subject

    def add_note(self, note: str) -> None:
        self.notes.append(note)

    def render(self) -> str:
        message = self.message
        lines: list[str] = []
        header = f"{'Outbox' if message.outbox else 'Inbox'} of {_display_date(self.date)}"
        if message.registered and message.updated_date is not None:
            if not message.reg_number or not message.reg_number.startswith(self.number):
                header += f" No {self.number}"
            lines.append(f"{header}  //{message.message_id}  //{message.task_name}")
            registered = message.updated_date.astimezone()
            lines.append(f"Registered {registered:%d.%m.%Y %H:%M} No {message.reg_number}")
        else:
            if not message.message_id.startswith(self.number):
                header += f" No {self.number}"
            lines.append(f"{header}  //{message.message_id}  //{message.task_name}")

        lines.append("")
        if message.title:
            lines.append(message.title)
        if message.text:
            lines.append(message.text)

        lines.append("")
        lines.append(f'Attachments in folder "{self.name}":')
        form = form_file_name(message)
        entries = sorted(
            f"{item.name} - {format_file_size(item.size)}"
            for item in message.files
            if not item.is_signature
            and not item.name.lower().startswith(form)
            and item.name.lower() != INFO_FILE_NAME
        )
        lines.extend(f"- {entry}" for entry in entries)

        if self.notes:
            lines.append("")
            lines.append("--")
            lines.extend(self.notes)
        return "\n".join(lines) + "\n"

    def write(self, folder: Path) -> Path:
        path = Path(folder) / INFO_FILE_NAME
        path.write_text(self.render(), encoding="utf-8")
        return path


def _display_date(value: str) -> str:
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").strftime("%d.%m.%Y")
    except ValueError:
        return "?"
