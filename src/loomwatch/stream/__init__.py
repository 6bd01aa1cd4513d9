"""
Stream Module
=============

WebSocket frame ingestion for LoomWatch.

This module provides the ingestion layer:
    - Frame: Typed frame data model (internal representation)
    - FrameBuffer: Drop-oldest bounded queue ("keep only latest" at size 1)
    - FrameConsumer: WebSocket client with validation and reconnection

Example:
    from loomwatch.stream import FrameBuffer, FrameConsumer

    buffer = FrameBuffer(maxsize=1)
    consumer = FrameConsumer(url="ws://localhost:8000/ws/camera", buffer=buffer)
    task = asyncio.create_task(consumer.run())

    while True:
        frame = await buffer.get()
        process(frame)
"""

from loomwatch.stream.frame import Frame
from loomwatch.stream.buffer import FrameBuffer
from loomwatch.stream.consumer import FrameConsumer, FrameConsumerMetrics


__all__ = [
    "Frame",
    "FrameBuffer",
    "FrameConsumer",
    "FrameConsumerMetrics",
]
