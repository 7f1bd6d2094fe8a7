"""Command-line interface for detecting, rectifying and scanning receipts.

Subcommands:

- ``detect``: print the document corners found in an image file.
- ``rectify``: write a rectified, enhanced JPEG of an image file.
- ``fields``: parse date, amount and payee from OCR text or a JSON reply.
- ``scan``: open a camera window with a live corner overlay; drag corners
  with the mouse, ``r`` resets detection, ``f`` switches to the next
  camera, space or ``c`` captures, ``q`` quits.
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path

import cv2
import numpy as np

from receipt_capture.capture.encoder import encode, suggested_filename
from receipt_capture.capture.handoff import (
    CaptureDispatcher,
    CaptureMessage,
    CaptureTarget,
    build_message,
)
from receipt_capture.capture.sampler import CameraSource
from receipt_capture.capture.session import CaptureSession
from receipt_capture.detection.detector import CornerDetector, detect_native
from receipt_capture.errors import CameraAcquisitionError
from receipt_capture.geometry.quadrilateral import Quadrilateral, parse_corners
from receipt_capture.ocr.receipt_fields import (
    parse_receipt_text,
    parse_structured_response,
)
from receipt_capture.ocr.service import ReceiptOCRService
from receipt_capture.rectification.rectifier import Rectifier
from receipt_capture.storage.keys import build_storage_key
from receipt_capture.tracking.overlay import render_display
from receipt_capture.tracking.tracker import DisplayMapping
from receipt_capture.utils.config import AppConfig, load_config
from receipt_capture.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

WINDOW_NAME = "receipt-capture"


def _read_image(file_path: Path) -> np.ndarray:
    """Load an image file as a BGR array.

    Raises:
        ValueError: If the file cannot be read as an image.
    """
    image = cv2.imread(str(file_path), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError(f"Cannot read image: {file_path}")
    return image


def _detect(image: np.ndarray, config: AppConfig) -> Quadrilateral | None:
    detector = CornerDetector(config.detector)
    quad, _ = detect_native(detector, image, config.sampler.max_processing_dimension)
    return quad


def detect_image(file_path: Path, config: AppConfig | None = None) -> dict[str, object]:
    """Detect document corners in an image file.

    Args:
        file_path: Image to analyse.
        config: Application configuration; loaded from disk when omitted.

    Returns:
        Dictionary with filename, image size and corners (or ``None``).
    """
    config = config or load_config()
    image = _read_image(file_path)
    quad = _detect(image, config)
    return {
        "filename": file_path.name,
        "width": int(image.shape[1]),
        "height": int(image.shape[0]),
        "detected": quad is not None,
        "corners": quad.to_list() if quad else None,
    }


def rectify_image(
    file_path: Path,
    output_path: Path,
    corners: Quadrilateral | None = None,
    config: AppConfig | None = None,
) -> dict[str, object]:
    """Rectify an image file and write the result as an encoded image.

    Args:
        file_path: Source photo.
        output_path: Destination file.
        corners: Document corners; detected automatically when omitted.
        config: Application configuration; loaded from disk when omitted.

    Returns:
        Summary with output path, size and whether rectification happened.
    """
    config = config or load_config()
    image = _read_image(file_path)
    quad = corners or _detect(image, config)

    result = Rectifier(config.rectifier).rectify(image, quad)
    data = encode(result.image, config.encoder.format, config.encoder.jpeg_quality)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(data)
    logger.info("Wrote %s (%d bytes)", output_path, len(data))
    return {
        "output": str(output_path),
        "width": result.width,
        "height": result.height,
        "rectified": result.rectified,
    }


def save_capture(message: CaptureMessage, output_dir: Path, user_id: int | str) -> Path:
    """Store a capture under its date-based storage key inside ``output_dir``.

    The receipt date from OCR is used when available, today's date otherwise.
    """
    if message.fields.date:
        on_date = date.fromisoformat(message.fields.date)
    else:
        on_date = date.today()
    key = build_storage_key(
        message.target.value, on_date, user_id, message.image.filename
    )
    path = output_dir / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(message.image.data)
    logger.info("Saved capture to %s", path)
    return path


def parse_fields(text: str, structured: bool = False) -> dict[str, object]:
    """Parse receipt fields from OCR text or a recognition service reply.

    Args:
        text: Plain OCR text, or a JSON reply when ``structured`` is set.
        structured: Treat ``text`` as a JSON reply (regex fallback applies).

    Returns:
        Dictionary with date, amount, payee, raw_text and error.
    """
    if structured:
        fields = parse_structured_response(text)
    else:
        fields = parse_receipt_text(text)
    return fields.to_dict()


def _parse_size(raw: str) -> tuple[int, int]:
    width, sep, height = raw.lower().partition("x")
    if not sep or not width.isdigit() or not height.isdigit():
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {raw!r}")
    if int(width) == 0 or int(height) == 0:
        raise argparse.ArgumentTypeError(f"Window size must be positive: {raw!r}")
    return int(width), int(height)


def run_scan(
    cameras: Sequence[int | str],
    output_dir: Path,
    target: CaptureTarget,
    user_id: int | str,
    use_ocr: bool = True,
    config: AppConfig | None = None,
    window_size: tuple[int, int] = (1280, 720),
) -> Path | None:
    """Run the interactive camera scanner until capture or quit.

    Args:
        cameras: Camera indices or URLs; ``f`` cycles through them.
        output_dir: Storage root for the capture.
        target: Record collection that receives the capture.
        user_id: Owner of the capture, part of its storage key.
        use_ocr: Read the receipt date for the storage key.
        config: Application configuration; loaded from disk when omitted.
        window_size: Display canvas the frame is letterboxed into.

    Returns:
        Path of the stored capture, or ``None`` if the user quit.

    Raises:
        CameraAcquisitionError: If a camera cannot be opened or is lost.
    """
    config = config or load_config()
    current = 0
    session = CaptureSession(CameraSource(cameras[current]), config)
    asyncio.run(session.start())

    dispatcher = CaptureDispatcher()
    saved: list[Path] = []
    dispatcher.register(
        target, lambda msg: saved.append(save_capture(msg, output_dir, user_id))
    )
    tracker = session.tracker
    mapping: DisplayMapping | None = None

    def on_mouse(event: int, x: int, y: int, flags: int, param: object) -> None:
        if mapping is None:
            return
        if event == cv2.EVENT_LBUTTONDOWN:
            tracker.pointer_down(x, y, mapping)
        elif event == cv2.EVENT_MOUSEMOVE:
            tracker.pointer_move(x, y, mapping)
        elif event == cv2.EVENT_LBUTTONUP:
            tracker.pointer_up()

    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
    cv2.setMouseCallback(WINDOW_NAME, on_mouse)
    delay = max(1, config.session.detection_interval_ms)

    try:
        while True:
            session.tick()
            frame = session.latest_frame
            if frame is not None:
                mapping = DisplayMapping.fit(*window_size, frame.width, frame.height)
                label = "raw capture only" if session.degraded else tracker.state.value
                cv2.imshow(
                    WINDOW_NAME,
                    render_display(
                        frame.image,
                        tracker.quadrilateral,
                        mapping,
                        tracker.selected_index,
                        label,
                    ),
                )

            key = cv2.waitKey(delay) & 0xFF
            if key in (ord("q"), 27):
                return None
            if key == ord("r"):
                tracker.reset()
            elif key == ord("f") and len(cameras) > 1:
                current = (current + 1) % len(cameras)
                mapping = None
                asyncio.run(session.switch_source(CameraSource(cameras[current])))
            elif key in (ord(" "), ord("c")):
                captured = session.capture()
                ocr_service = ReceiptOCRService(config.ocr) if use_ocr else None
                dispatcher.dispatch(build_message(captured, target, ocr_service))
                return saved[-1]
    finally:
        asyncio.run(session.stop())
        cv2.destroyWindow(WINDOW_NAME)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Receipt capture: detect, rectify and scan documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    detect_parser = subparsers.add_parser("detect", help="Detect document corners")
    detect_parser.add_argument("file", type=Path, help="Image file to analyse")

    rectify_parser = subparsers.add_parser("rectify", help="Rectify a document photo")
    rectify_parser.add_argument("file", type=Path, help="Image file to rectify")
    rectify_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path(suggested_filename("JPEG", "rectified")),
        help="Output image file (default: rectified.jpg)",
    )
    rectify_parser.add_argument(
        "--corners", help="Corners as x1,y1,x2,y2,x3,y3,x4,y4 (default: detect)"
    )

    fields_parser = subparsers.add_parser(
        "fields", help="Parse receipt fields from OCR text"
    )
    fields_parser.add_argument("file", help="Text file, or - for stdin")
    fields_parser.add_argument(
        "--json",
        dest="structured",
        action="store_true",
        help="Input is a JSON reply from a recognition service",
    )

    scan_parser = subparsers.add_parser("scan", help="Capture from a camera")
    scan_parser.add_argument(
        "--camera",
        nargs="+",
        default=["0"],
        help="Camera indices or URLs; f switches between them (default: 0)",
    )
    scan_parser.add_argument(
        "--window-size",
        type=_parse_size,
        default=(1280, 720),
        help="Display size as WIDTHxHEIGHT (default: 1280x720)",
    )
    scan_parser.add_argument(
        "--output-dir", type=Path, default=Path("captures"), help="Storage root"
    )
    scan_parser.add_argument(
        "-t",
        "--target",
        choices=[t.value for t in CaptureTarget],
        default=CaptureTarget.RECEIPTS.value,
        help="Record collection for the capture (default: receipts)",
    )
    scan_parser.add_argument("--user-id", default="0", help="Owner of the capture")
    scan_parser.add_argument("--no-ocr", action="store_true", help="Skip OCR")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "detect":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(detect_image(args.file, config), indent=2))
    elif args.command == "rectify":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            corners = parse_corners(args.corners) if args.corners else None
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        result = rectify_image(args.file, args.output, corners, config)
        print(json.dumps(result, indent=2))
    elif args.command == "fields":
        if args.file == "-":
            text = sys.stdin.read()
        elif Path(args.file).exists():
            text = Path(args.file).read_text(encoding="utf-8")
        else:
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = parse_fields(text, args.structured)
        print(json.dumps(result, indent=2, ensure_ascii=False))
    elif args.command == "scan":
        cameras = [int(c) if c.isdigit() else c for c in args.camera]
        try:
            path = run_scan(
                cameras,
                args.output_dir,
                CaptureTarget(args.target),
                args.user_id,
                not args.no_ocr,
                config,
                args.window_size,
            )
        except CameraAcquisitionError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        if path is not None:
            print(f"Capture saved to {path}")
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
