"""Wait for an outbound message to be registered by the portal."""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from typing import Callable

from .errors import NothingReceivedError, OperationCancelled, TerminalStatusError
from .models import ERROR, REJECTED, Message, MessageReceipt
from .portal_client import PortalClient

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class StatusPoller:
    """Poll one message until it reaches a terminal status or time runs out."""

    def __init__(
        self,
        client: PortalClient,
        poll_interval: float = 30.0,
        default_timeout: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.default_timeout = default_timeout
        self.clock = clock
        self._sleep = sleep

    def wait(
        self,
        message_id: str,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Message:
        """Return the message once registered or success.

        Raises TerminalStatusError on error or rejected, and
        NothingReceivedError when the message was never fetched before the
        timeout. Any other status at the timeout returns the last message.
        """
        timeout = self.default_timeout if timeout is None else timeout
        deadline = self.clock() + timeout
        last: Message | None = None

        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Polling of {message_id} cancelled")
            result = self.client.get_message(message_id)
            if result.ok:
                last = result.data
                logger.debug("Message %s status %s", message_id, last.status)
                if last.accepted:
                    logger.info("Message %s is %s", message_id, last.status)
                    return last
                if last.status in (ERROR, REJECTED):
                    raise TerminalStatusError(self.describe_failure(last))
            else:
                logger.warning("Status of %s not available: %s", message_id, result.error.error_message)

            if self.clock() >= deadline:
                break
            self._pause(cancel)

        if last is not None:
            logger.warning("Message %s is still %s after %ss", message_id, last.status, timeout)
            return last
        raise NothingReceivedError(f"Nothing received for {message_id} within {timeout:.0f}s.")

    def _pause(self, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(self.poll_interval)
        elif cancel.wait(self.poll_interval):
            raise OperationCancelled("Polling cancelled")

    @staticmethod
    def describe_failure(message: Message) -> str:
        """Text of the newest error or rejection receipt."""
        receipts = [item for item in message.receipts if item.status in (ERROR, REJECTED) and item.message]
        if not receipts:
            return "Error or rejection without receipt detail."
        newest = max(receipts, key=_receipt_time)
        if newest.status == ERROR:
            return f"Error received: {newest.message}"
        return f"Rejection received: {newest.message}"


def _receipt_time(receipt: MessageReceipt) -> datetime:
    return receipt.status_time or receipt.receive_time or _EPOCH
