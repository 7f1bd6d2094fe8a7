"""Hand-off of finished captures to the record that will own them.

The receiver is chosen by the explicit target carried on each message,
never by whichever view happens to be listening.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from receipt_capture.ocr.receipt_fields import ReceiptFields
from receipt_capture.ocr.service import ReceiptOCRService
from receipt_capture.utils.logger import get_logger

from .session import CapturedImage

logger = get_logger(__name__)


class CaptureTarget(StrEnum):
    """Record collections a capture can be attached to.

    Values double as storage key categories.
    """

    RECEIPTS = "receipts"
    INVOICES = "invoices"
    CL_PAYMENTS = "cl_payments"
    PAYMENT_DETAILS = "payment_details"


@dataclass
class CaptureMessage:
    """A capture plus everything the receiving record needs."""

    image: CapturedImage
    target: CaptureTarget
    fields: ReceiptFields = field(default_factory=ReceiptFields)


Handler = Callable[[CaptureMessage], Any]


class CaptureDispatcher:
    """Routes capture messages to the handler registered for their target."""

    def __init__(self) -> None:
        self._handlers: dict[CaptureTarget, Handler] = {}

    def register(self, target: CaptureTarget, handler: Handler) -> None:
        self._handlers[target] = handler

    def unregister(self, target: CaptureTarget) -> None:
        self._handlers.pop(target, None)

    def dispatch(self, message: CaptureMessage) -> Any:
        """Deliver ``message`` to its target's handler.

        Raises:
            KeyError: If no handler is registered for the target.
        """
        handler = self._handlers.get(message.target)
        if handler is None:
            raise KeyError(f"No handler registered for {message.target.value}")
        logger.info(
            "Dispatching %s (%d bytes) to %s",
            message.image.filename,
            len(message.image.data),
            message.target.value,
        )
        return handler(message)


def build_message(
    image: CapturedImage,
    target: CaptureTarget,
    ocr_service: ReceiptOCRService | None = None,
) -> CaptureMessage:
    """Attach OCR results (when a service is given) to a capture."""
    fields = ocr_service.extract(image.data) if ocr_service else ReceiptFields()
    return CaptureMessage(image=image, target=target, fields=fields)
