"""
Frame Consumer
==============

WebSocket client that feeds camera frames into a FrameBuffer.

This module provides the FrameConsumer class which:
    - Connects to the camera source's WebSocket endpoint
    - Validates each message against the FrameMessage schema
    - Warns on frame-id gaps and timestamps going backwards
    - Reconnects with a fixed backoff until stopped
    - Starts a new stream generation on every connection and whenever
      the source clock restarts, dropping frames of the old stream

Design Rules:
    - Does NOT decode image data
    - Invalid messages are logged and skipped
    - Frame gaps are expected (the source drops frames under load)
"""

import asyncio
import logging
from typing import Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedOK

from loomwatch.models.input import FrameMessage
from loomwatch.stream.buffer import FrameBuffer
from loomwatch.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameConsumerMetrics:
    """Metrics for FrameConsumer observability."""

    __slots__ = (
        "frames_received",
        "reconnect_count",
        "last_frame_id",
        "last_timestamp",
        "frame_gaps",
        "parse_errors",
        "stream_restarts",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.reconnect_count: int = 0
        self.last_frame_id: int = -1
        self.last_timestamp: float = 0.0
        self.frame_gaps: int = 0
        self.parse_errors: int = 0
        self.stream_restarts: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "reconnect_count": self.reconnect_count,
            "last_frame_id": self.last_frame_id,
            "last_timestamp": self.last_timestamp,
            "frame_gaps": self.frame_gaps,
            "parse_errors": self.parse_errors,
            "stream_restarts": self.stream_restarts,
        }


class FrameConsumer:
    """
    WebSocket consumer for camera frames.

    Example:
        buffer = FrameBuffer(maxsize=1)
        consumer = FrameConsumer(url="ws://localhost:8000/ws/camera", buffer=buffer)

        task = asyncio.create_task(consumer.run())
        ...
        await consumer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        buffer: FrameBuffer,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        """
        Initialize frame consumer.

        Args:
            url: WebSocket URL of the camera source
            buffer: FrameBuffer to push validated frames into
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
        """
        self.url = url
        self.buffer = buffer
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts

        self._websocket: Optional[object] = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._generation: int = 0

        self.metrics = FrameConsumerMetrics()

    @property
    def connected(self) -> bool:
        """Whether currently connected to the camera source."""
        return self._connected

    @property
    def stream_generation(self) -> int:
        """Generation stamped on frames parsed from now on."""
        return self._generation

    def _begin_stream(self, reason: str) -> None:
        """Start a new stream generation and drop frames of the previous one."""
        self._generation += 1
        self.metrics.last_frame_id = -1
        self.metrics.last_timestamp = 0.0
        dropped = self.buffer.clear()

        if self._generation > 1:
            self.metrics.stream_restarts += 1
        logger.info(
            f"Camera stream generation {self._generation} ({reason}), "
            f"dropped {dropped} buffered frame(s)"
        )

    async def run(self) -> None:
        """
        Consume frames until stop() is called.

        Each lost or refused connection counts as one reconnect attempt;
        the loop gives up once max_reconnect_attempts is reached.
        """
        self._running = True
        self._stop_event.clear()
        logger.info(f"FrameConsumer starting, source={self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if self._running:
                    logger.error(f"Camera source connection failed: {e}")
            finally:
                self._connected = False

            if not self._should_retry():
                break
            if await self._sleep_or_stop(self.reconnect_backoff_ms / 1000.0):
                break

        self._running = False
        logger.info("FrameConsumer stopped")

    def _should_retry(self) -> bool:
        if not self._running:
            return False

        attempts = self.metrics.reconnect_count
        if 0 < self.max_reconnect_attempts <= attempts:
            logger.error(f"Giving up after {attempts} reconnect attempts")
            return False

        self.metrics.reconnect_count = attempts + 1
        logger.info(
            f"Reconnect attempt {attempts + 1} in {self.reconnect_backoff_ms} ms"
        )
        return True

    async def _sleep_or_stop(self, seconds: float) -> bool:
        """Wait out the backoff; True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def stop(self) -> None:
        """Signal the run loop to exit and close the connection."""
        logger.info("FrameConsumer stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            await self._websocket.close()

        self._connected = False

    async def _connect_and_consume(self) -> None:
        """Connect and push frames until the connection ends."""
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info(f"Connected to camera source: {self.url}")
            self._begin_stream("connected")

            try:
                async for message in ws:
                    if not self._running:
                        break

                    frame = self.parse_message(message)
                    if frame is not None:
                        await self.buffer.put(frame)
            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            finally:
                self._connected = False
                self._websocket = None

    def parse_message(self, raw) -> Optional[Frame]:
        """
        Validate a raw WebSocket message and convert it to a Frame.

        Ordering problems are logged, not rejected. A timestamp that goes
        backwards means the source clock restarted and begins a new stream
        generation.

        Args:
            raw: JSON text (or bytes) from the WebSocket

        Returns:
            Frame, or None if the message is invalid
        """
        try:
            message = FrameMessage.model_validate_json(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid frame message: {e.error_count()} error(s)")
            return None

        if 0 < message.timestamp < self.metrics.last_timestamp:
            logger.warning(
                f"Timestamp went backwards: got {message.timestamp:.3f}, "
                f"previous was {self.metrics.last_timestamp:.3f}"
            )
            self._begin_stream("source clock restarted")

        last_id = self.metrics.last_frame_id
        if last_id >= 0 and message.frame_id != last_id + 1:
            self.metrics.frame_gaps += 1
            if message.frame_id <= last_id:
                logger.warning(
                    f"Frame ID went backwards: got {message.frame_id}, last was {last_id}"
                )
            else:
                logger.debug(
                    f"Frame ID gap: got {message.frame_id}, expected {last_id + 1}"
                )

        self.metrics.frames_received += 1
        self.metrics.last_frame_id = message.frame_id
        self.metrics.last_timestamp = message.timestamp

        return Frame(
            frame_id=message.frame_id,
            timestamp=message.timestamp,
            fps=message.fps,
            image_b64=message.image,
            stream_generation=self._generation,
        )
