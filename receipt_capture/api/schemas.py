"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel


class CornerModel(BaseModel):
    """A corner in the uploaded image's pixel coordinates."""

    x: float
    y: float


class DetectionResponse(BaseModel):
    """Response schema for corner detection on an uploaded image."""

    detected: bool
    corners: list[CornerModel] | None = None
    width: int
    height: int
    processing_scale: float
    processing_time_ms: float


class ReceiptFieldsResponse(BaseModel):
    """Response schema for receipt OCR."""

    success: bool
    date: str | None = None
    amount: int | None = None
    payee: str | None = None
    rectified: bool = False
    error: str | None = None


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    opencv_version: str
