"""
Frame Buffer
============

Bounded asyncio queue between the frame consumer and the detection loop.

The detection math is sequential and not designed to catch up on a
backlog, so the buffer drops the oldest frame when full. With the default
capacity of 1 this is a "keep only latest" slot.
"""

import asyncio
import logging
from typing import Optional

from loomwatch.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Drop-oldest bounded frame queue.

    Example:
        buffer = FrameBuffer(maxsize=1)

        await buffer.put(frame)            # producer
        frame = await buffer.get(1.0)      # consumer, None on timeout
    """

    def __init__(self, maxsize: int = 1) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Frames discarded because a newer frame arrived first."""
        return self._dropped_count

    async def put(self, frame: Frame) -> bool:
        """
        Add a frame, evicting the oldest one if the buffer is full.

        Returns:
            True if nothing was evicted, False otherwise
        """
        self._total_put += 1
        evicted = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
                evicted = True
                logger.debug(f"Buffer full, dropped oldest frame (total {self._dropped_count})")
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(frame)
        return not evicted

    async def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Get the next frame.

        Args:
            timeout: Seconds to wait, None = wait forever

        Returns:
            Next frame, or None on timeout
        """
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def clear(self) -> int:
        """Discard all buffered frames; returns how many were dropped."""
        cleared = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            cleared += 1
        return cleared

    def metrics(self) -> dict:
        """Buffer metrics for observability."""
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
