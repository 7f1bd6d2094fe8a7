"""OCR collaborator that turns captured image bytes into receipt fields.

``extract`` never raises: an undecodable image, a missing Tesseract
binary or an OCR error all produce an empty :class:`ReceiptFields` with
``error`` set, so a capture can always proceed to upload.
"""

import cv2

from receipt_capture.capture.encoder import decode
from receipt_capture.utils.config import OCRConfig
from receipt_capture.utils.logger import get_logger

from .receipt_fields import ReceiptFields, parse_receipt_text
from .tesseract_engine import TesseractEngine

logger = get_logger(__name__)


class ReceiptOCRService:
    """Runs OCR on a captured receipt and parses date, amount and payee.

    Args:
        config: OCR settings.
        engine: Engine override, mainly for tests.
    """

    def __init__(
        self, config: OCRConfig | None = None, engine: TesseractEngine | None = None
    ) -> None:
        self.config = config or OCRConfig()
        self.engine = engine or TesseractEngine(
            tesseract_cmd=self.config.tesseract_cmd,
            default_lang=self.config.default_lang,
        )

    def extract(self, image_bytes: bytes) -> ReceiptFields:
        """Recognize receipt fields in an encoded image.

        Args:
            image_bytes: JPEG/PNG bytes as produced by the capture encoder.

        Returns:
            Parsed fields, or empty fields carrying an error message.
        """
        if not image_bytes:
            return ReceiptFields(error="No image supplied")

        try:
            image = decode(image_bytes)
            if image.ndim == 3:
                image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
            result = self.engine.extract_text(image, psm=self.config.psm)
        except (ValueError, OSError, RuntimeError) as exc:
            logger.error("Receipt OCR failed: %s", exc)
            return ReceiptFields(error=str(exc))

        return parse_receipt_text(result.text)
