"""FastAPI application for the receipt capture pipeline.

Exposes corner detection, rectification and receipt OCR for images
uploaded by clients that cannot run the pipeline themselves.
"""

import time
from typing import Annotated

import cv2
from fastapi import FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from receipt_capture import __version__
from receipt_capture.capture.encoder import content_type, decode, encode
from receipt_capture.detection.detector import CornerDetector, detect_native
from receipt_capture.geometry.quadrilateral import parse_corners
from receipt_capture.ocr.service import ReceiptOCRService
from receipt_capture.rectification.rectifier import Rectifier
from receipt_capture.utils.config import AppConfig, load_config
from receipt_capture.utils.logger import get_logger

from .schemas import (
    CornerModel,
    DetectionResponse,
    HealthResponse,
    ReceiptFieldsResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Receipt Capture API",
    description="Detect, rectify and read receipts and invoices",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "application/octet-stream",
}


def _get_components() -> tuple[AppConfig, CornerDetector, Rectifier, ReceiptOCRService]:
    """Initialize and return shared processing components.

    Returns:
        Tuple of (config, detector, rectifier, ocr_service).
    """
    config = load_config()
    return (
        config,
        CornerDetector(config.detector),
        Rectifier(config.rectifier),
        ReceiptOCRService(config.ocr),
    )


async def _read_image(file: UploadFile):
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )
    try:
        return decode(await file.read())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    _, _, _, ocr_service = _get_components()
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=ocr_service.engine.is_available(),
        opencv_version=cv2.__version__,
    )


@app.post("/detect", response_model=DetectionResponse)
async def detect_corners(
    file: Annotated[UploadFile, File(...)],
) -> DetectionResponse:
    """Detect document corners in an uploaded image.

    Corners are returned in the uploaded image's own pixel coordinates.
    """
    start_time = time.time()
    image = await _read_image(file)
    config, detector, _, _ = _get_components()
    quad, scale = detect_native(
        detector, image, config.sampler.max_processing_dimension
    )

    return DetectionResponse(
        detected=quad is not None,
        corners=[CornerModel(x=c.x, y=c.y) for c in quad] if quad else None,
        width=image.shape[1],
        height=image.shape[0],
        processing_scale=scale,
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.post("/rectify")
async def rectify_document(
    file: Annotated[UploadFile, File(...)],
    corners: Annotated[str | None, Query()] = None,
) -> Response:
    """Rectify an uploaded image and return it as JPEG.

    Args:
        file: Uploaded photo.
        corners: Optional ``x1,y1,...,x4,y4``; detected automatically when
            omitted.

    Returns:
        JPEG bytes. The ``X-Rectified`` header tells whether a perspective
        correction was applied.
    """
    image = await _read_image(file)
    config, detector, rectifier, _ = _get_components()

    if corners:
        try:
            quad = parse_corners(corners)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    else:
        quad, _ = detect_native(
            detector, image, config.sampler.max_processing_dimension
        )

    result = rectifier.rectify(image, quad)
    data = encode(result.image, config.encoder.format, config.encoder.jpeg_quality)
    return Response(
        content=data,
        media_type=content_type(config.encoder.format),
        headers={"X-Rectified": str(result.rectified).lower()},
    )


@app.post("/extract", response_model=ReceiptFieldsResponse)
async def extract_receipt(
    file: Annotated[UploadFile, File(...)],
    rectify: Annotated[bool, Query()] = True,
) -> ReceiptFieldsResponse:
    """Read date, amount and payee from an uploaded receipt.

    OCR failures are reported in the body with ``success=false`` rather
    than as an HTTP error.
    """
    image = await _read_image(file)
    config, detector, rectifier, ocr_service = _get_components()

    rectified = False
    if rectify:
        quad, _ = detect_native(
            detector, image, config.sampler.max_processing_dimension
        )
        result = rectifier.rectify(image, quad)
        image, rectified = result.image, result.rectified

    fields = ocr_service.extract(encode(image, "PNG"))
    return ReceiptFieldsResponse(
        success=fields.error is None,
        date=fields.date,
        amount=fields.amount,
        payee=fields.payee,
        rectified=rectified,
        error=fields.error,
    )
