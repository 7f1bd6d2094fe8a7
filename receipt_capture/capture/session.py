"""Live capture session: scheduling, readiness gating and teardown.

A session runs one Sample -> Detect cycle per tick on a single asyncio
loop. Ticks are never queued: the loop sleeps between cycles and a tick
requested while another is running is skipped. Stopping the session
cancels the loop, releases the camera and guarantees that no further tick
touches the tracker. A camera lost while the loop runs ends the loop and
is raised from :meth:`CaptureSession.stop`.
"""

import asyncio
import contextlib
from dataclasses import dataclass

import numpy as np

from receipt_capture.detection.detector import CornerDetector
from receipt_capture.errors import CameraAcquisitionError, SessionClosedError
from receipt_capture.geometry.quadrilateral import Quadrilateral
from receipt_capture.rectification.rectifier import Rectifier
from receipt_capture.tracking.tracker import CornerTracker, Detector
from receipt_capture.utils.config import AppConfig
from receipt_capture.utils.logger import get_logger

from .encoder import content_type, encode, encode_to_limit, suggested_filename
from .sampler import Frame, VideoSource, sample

logger = get_logger(__name__)


def _warm_up() -> None:
    CornerDetector().detect(np.zeros((64, 64), dtype=np.uint8))


class EngineReadiness:
    """One-shot readiness signal for the computer-vision engine.

    The session waits on it (with a timeout) before detection may start.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._warm_up_task: asyncio.Task | None = None

    @property
    def ready(self) -> bool:
        return self._event.is_set()

    def mark_ready(self) -> None:
        self._event.set()

    def start_warm_up(self) -> None:
        """Warm up OpenCV off the loop and mark ready when done."""
        if self._warm_up_task is None and not self.ready:
            self._warm_up_task = asyncio.create_task(self._run_warm_up())

    async def _run_warm_up(self) -> None:
        await asyncio.to_thread(_warm_up)
        self.mark_ready()
        logger.debug("Computer vision engine ready")

    async def wait(self, timeout: float) -> bool:
        """Wait until ready; ``False`` if ``timeout`` seconds pass first."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def cancel(self) -> None:
        if self._warm_up_task is not None and not self._warm_up_task.done():
            self._warm_up_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._warm_up_task


@dataclass
class CapturedImage:
    """An encoded capture ready for upload and OCR."""

    data: bytes
    filename: str
    content_type: str
    rectified: bool
    width: int
    height: int


class CaptureSession:
    """Drives sampling, detection and capture for one camera dialog.

    Args:
        source: Video source to read frames from.
        config: Application configuration.
        readiness: Engine readiness signal; a warm-up is started
            when omitted.
        detector: Detector override, mainly for tests.
        rectifier: Rectifier override.
    """

    def __init__(
        self,
        source: VideoSource,
        config: AppConfig | None = None,
        readiness: EngineReadiness | None = None,
        detector: Detector | None = None,
        rectifier: Rectifier | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.source = source
        self.readiness = readiness
        self.detector = detector or CornerDetector(self.config.detector)
        self.tracker = CornerTracker(self.detector, self.config.tracker)
        self.rectifier = rectifier or Rectifier(self.config.rectifier)
        self.degraded = False
        self.error: CameraAcquisitionError | None = None
        self._latest: Frame | None = None
        self._loop_task: asyncio.Task | None = None
        self._started = False
        self._stopped = False
        self._busy = False

    @property
    def latest_frame(self) -> Frame | None:
        return self._latest

    @property
    def running(self) -> bool:
        return self._started and not self._stopped and self.error is None

    async def start(self) -> None:
        """Open the camera and wait for the engine.

        Raises:
            CameraAcquisitionError: If the camera cannot be opened.
            SessionClosedError: If the session was already stopped.
        """
        if self._stopped:
            raise SessionClosedError("Capture session has been stopped")
        self.source.open()
        self._started = True

        if self.readiness is None:
            self.readiness = EngineReadiness()
            self.readiness.start_warm_up()

        timeout = self.config.session.engine_ready_timeout_s
        if not await self.readiness.wait(timeout):
            self.degraded = True
            logger.warning(
                "Vision engine not ready after %.0fs, capturing without detection",
                timeout,
            )
        logger.info("Capture session started (degraded=%s)", self.degraded)

    def tick(self) -> Quadrilateral | None:
        """Sample one frame and run one detection attempt.

        Returns:
            The tracker's quadrilateral after the tick, or ``None`` when the
            session is not running.

        Raises:
            CameraAcquisitionError: If the camera stopped delivering frames.
        """
        if not self.running:
            return None
        if self._busy:
            return self.tracker.quadrilateral

        self._busy = True
        try:
            frame = sample(self.source, self.config.sampler.max_processing_dimension)
            self._latest = frame
            if self.degraded and self.readiness is not None and self.readiness.ready:
                self.degraded = False
                logger.info("Vision engine became ready, detection enabled")
            if self.degraded:
                return None
            return self.tracker.tick(frame)
        finally:
            self._busy = False

    async def run(self) -> None:
        """Tick until the session is stopped or the camera is lost.

        A lost camera ends the loop and is kept in :attr:`error`;
        :meth:`stop` raises it.
        """
        interval = self.config.session.detection_interval_ms / 1000.0
        while self.running:
            try:
                self.tick()
            except CameraAcquisitionError as exc:
                self.error = exc
                logger.error("Camera lost, detection stopped: %s", exc)
                return
            await asyncio.sleep(interval)

    def start_loop(self) -> asyncio.Task:
        """Schedule :meth:`run` on the current event loop."""
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self.run())
        return self._loop_task

    def capture(self) -> CapturedImage:
        """Rectify and encode the current frame at native resolution.

        Raises:
            CameraAcquisitionError: If the camera was lost.
            SessionClosedError: If the session is not running.
        """
        if self.error is not None:
            raise self.error
        if not self.running:
            raise SessionClosedError("Capture session is not running")

        native = sample(self.source, max_dimension=None)
        quadrilateral = self.tracker.quadrilateral
        if quadrilateral is not None and self._latest is not None:
            quadrilateral = quadrilateral.scaled(1.0 / self._latest.scale)

        result = self.rectifier.rectify(native, quadrilateral)
        encoder = self.config.encoder
        if encoder.max_upload_bytes:
            data, _ = encode_to_limit(
                result.image,
                encoder.max_upload_bytes,
                encoder.quality_presets,
                encoder.format,
            )
        else:
            data = encode(result.image, encoder.format, encoder.jpeg_quality)

        logger.info(
            "Captured %dx%d image (%d bytes, rectified=%s)",
            result.width,
            result.height,
            len(data),
            result.rectified,
        )
        return CapturedImage(
            data=data,
            filename=suggested_filename(encoder.format),
            content_type=content_type(encoder.format),
            rectified=result.rectified,
            width=result.width,
            height=result.height,
        )

    async def _cancel_loop(self) -> bool:
        """Cancel the scheduled loop; ``True`` if one was scheduled."""
        task, self._loop_task = self._loop_task, None
        if task is None:
            return False
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return True

    async def switch_source(self, source: VideoSource) -> None:
        """Replace the camera, e.g. when the user flips between devices.

        The tracked corners belong to the old camera's view and are
        dropped; detection restarts on the new source.

        Raises:
            CameraAcquisitionError: If the new source cannot be opened.
            SessionClosedError: If the session is not started or stopped.
        """
        if not self._started or self._stopped:
            raise SessionClosedError("Capture session is not running")

        restart = await self._cancel_loop()
        self.tracker.teardown()
        self._latest = None
        self.source.release()

        self.source = source
        self.error = None
        self.source.open()
        logger.info("Switched capture source")
        if restart:
            self.start_loop()

    async def stop(self) -> None:
        """Cancel scheduled ticks and release every per-session resource.

        Raises:
            CameraAcquisitionError: If the detection loop ended because the
                camera was lost.
        """
        if self._stopped:
            return
        self._stopped = True

        await self._cancel_loop()
        if self.readiness is not None:
            await self.readiness.cancel()

        self.tracker.teardown()
        self._latest = None
        self.source.release()
        logger.info("Capture session stopped")
        if self.error is not None:
            raise self.error

    async def __aenter__(self) -> "CaptureSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
