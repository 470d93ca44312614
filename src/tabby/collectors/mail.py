"""Mail collector — messages sent during a request.

Records ``email.message`` objects handed over after sending (for example
right after ``smtplib.SMTP.send_message``).  By default the snapshot only
lists recipients, subject and raw headers; ``show_message_data()`` adds
senders, copies, the plain-text body and attachment names.
"""

from __future__ import annotations

import time
from email.message import EmailMessage
from email.utils import formataddr, getaddresses
from typing import TYPE_CHECKING, Any

from tabby.collectors.base import DataCollector

if TYPE_CHECKING:
    from collections.abc import Callable
    from email.message import Message

    from tabby._types import Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks

_ADDRESS_HEADERS = (
    ("from", "From"),
    ("reply_to", "Reply-To"),
    ("to", "To"),
    ("cc", "Cc"),
    ("bcc", "Bcc"),
)


class MailCollector(DataCollector):
    """Collects sent mail for one request."""

    __slots__ = ("_messages", "_show_detailed")

    def __init__(
        self,
        name: str = "mails",
        *,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self._messages: list[Message] = []
        self._show_detailed = False

    def add_message(self, message: Message) -> None:
        self._messages.append(message)

    def show_message_data(self, enabled: bool = True) -> None:
        """Include full message details (senders, body, attachments) in snapshots."""
        self._show_detailed = enabled

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def collect(self) -> Snapshot:
        mails = []
        for message in self._messages:
            data = mail_data(message)
            if self._show_detailed:
                mails.append({key: value for key, value in data.items() if value})
            else:
                mails.append({
                    "to": data["to"],
                    "subject": data["subject"],
                    "headers": data["headers"],
                })
        return {"count": len(mails), "mails": mails}


def mail_data(message: Message) -> dict[str, Any]:
    """Every displayed field of ``message``; address headers as lists of strings."""
    data: dict[str, Any] = {
        "subject": _header(message, "Subject"),
        "date": _header(message, "Date"),
        "return_path": _header(message, "Return-Path"),
        "sender": _header(message, "Sender"),
    }
    for key, header in _ADDRESS_HEADERS:
        data[key] = [
            formataddr((name, address))
            for name, address in getaddresses([str(v) for v in message.get_all(header, [])])
            if address
        ]
    data["text_body"] = _text_body(message)
    data["attachments"] = _attachments(message)
    data["headers"] = "\n".join(f"{name}: {value}" for name, value in message.items())
    return data


def _header(message: Message, name: str) -> str | None:
    value = message.get(name)
    return str(value) if value is not None else None


def _text_body(message: Message) -> str | None:
    if isinstance(message, EmailMessage):
        body = message.get_body(preferencelist=("plain",))
        if body is None or body.get_payload() is None:
            return None
        return body.get_content()
    if message.is_multipart() or message.get_content_type() != "text/plain":
        return None
    payload = message.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return None
    return payload.decode(message.get_content_charset() or "utf-8", "replace")


def _attachments(message: Message) -> list[str]:
    if isinstance(message, EmailMessage):
        parts = list(message.iter_attachments())
    else:
        parts = [p for p in message.walk() if p.get_content_disposition() == "attachment"]
    return [part.get_filename() or part.get_content_type() for part in parts]
