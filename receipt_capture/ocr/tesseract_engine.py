"""Tesseract OCR engine wrapper for rectified receipt images.

Provides text extraction with an average word confidence and a check
for whether the Tesseract binary is installed.
"""

import shutil
from dataclasses import dataclass

import numpy as np
import pytesseract
from PIL import Image

from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OCRResult:
    """Text recognized on one image."""

    text: str
    language: str
    confidence: float
    word_count: int


class TesseractEngine:
    """Wrapper around Tesseract OCR for receipt text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Default OCR language code (``"eng+jpn"`` style
            combinations are accepted).
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang

    def is_available(self) -> bool:
        """Whether the Tesseract executable can be found."""
        return shutil.which(self.tesseract_cmd or "tesseract") is not None

    def extract_text(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int = 6,
    ) -> OCRResult:
        """Extract text from an image.

        Args:
            image: Input image as a numpy array (RGB or grayscale).
            lang: OCR language code. Defaults to the engine default.
            psm: Tesseract page segmentation mode; 6 (single block) suits
                receipts.

        Returns:
            OCRResult with the full text and mean word confidence.

        Raises:
            pytesseract.TesseractError: If Tesseract fails on the image.
            pytesseract.TesseractNotFoundError: If Tesseract is not installed.
        """
        lang = lang or self.default_lang
        config = f"--psm {psm}"

        pil_image = Image.fromarray(image)
        text = pytesseract.image_to_string(pil_image, lang=lang, config=config)
        data = pytesseract.image_to_data(
            pil_image,
            lang=lang,
            config=config,
            output_type=pytesseract.Output.DICT,
        )

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and word.strip()
        ]
        avg_conf = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0

        logger.info(
            "OCR extracted %d words with average confidence %.2f",
            len(confidences),
            avg_conf,
        )
        return OCRResult(
            text=text,
            language=lang,
            confidence=avg_conf,
            word_count=len(confidences),
        )
