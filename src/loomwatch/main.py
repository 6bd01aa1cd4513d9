"""
LoomWatch Main Application
==========================

FastAPI entry point for the obstacle detection service.

Pipeline:
    FrameConsumer → FrameBuffer → FlowSignalProcessor → DetectionAgentGraph
        → LoggingSpeechNotifier + DetectionAnalytics

Endpoints:
    GET  /           - Service information and current status line
    GET  /health     - Liveness probe (is process alive?)
    GET  /ready      - Readiness probe (stream connected or pipeline running?)
    GET  /metrics    - Stream, flow, detection and speech metrics
    GET  /event      - Latest DetectionEvent
    WS   /ws/events  - Real-time DetectionEvent stream
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from loomwatch.agent import DetectionAgentGraph, create_detection_graph
from loomwatch.config import settings
from loomwatch.flow.optical_flow import estimator_from_config
from loomwatch.models.output import DetectionEvent
from loomwatch.notify import LoggingSpeechNotifier
from loomwatch.observability import DetectionAnalytics, format_metrics, format_status
from loomwatch.signals import FlowSignalProcessor
from loomwatch.stream import Frame, FrameBuffer, FrameConsumer


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False

# Ingestion
_frame_buffer: Optional[FrameBuffer] = None
_frame_consumer: Optional[FrameConsumer] = None
_consumer_task: Optional[asyncio.Task] = None

# Detection
_flow_processor: Optional[FlowSignalProcessor] = None
_graph: Optional[DetectionAgentGraph] = None
_notifier: Optional[LoggingSpeechNotifier] = None
_analytics: Optional[DetectionAnalytics] = None

_processing_task: Optional[asyncio.Task] = None

_session_generation: int = 0
_current_event: Optional[DetectionEvent] = None
_startup_time: float = 0.0
_is_ready: bool = False

_frame_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_frame_buffer() -> Optional[FrameBuffer]:
    return _frame_buffer

def get_frame_consumer() -> Optional[FrameConsumer]:
    return _frame_consumer

def get_graph() -> Optional[DetectionAgentGraph]:
    return _graph

def get_current_event() -> Optional[DetectionEvent]:
    return _current_event


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Processing Pipeline
# =============================================================================

def _start_stream_session(generation: int) -> None:
    """Fresh flow memory and detection session for a new camera stream."""
    global _session_generation

    _flow_processor.reset()
    _graph.on_session_start(_flow_processor.width, _flow_processor.height)
    _session_generation = generation
    logger.info(f"Detection session restarted for camera stream {generation}")


def process_frame(frame: Frame) -> DetectionEvent:
    """Run one frame through flow, detection, analytics and speech."""
    global _current_event

    if frame.stream_generation != _session_generation:
        _start_stream_session(frame.stream_generation)

    flow = _flow_processor.update(frame)
    event = _graph.on_frame(flow, timestamp_ms=frame.timestamp_ms)

    _analytics.record(event)
    if event.alert_raised:
        _notifier.notify(event.alert, now_ms=event.timestamp_ms)

    _current_event = event
    return event


async def process_frames() -> None:
    """Frame → flow → detection → alert loop."""
    global _is_ready, _frame_error_count

    if (
        _frame_buffer is None or
        _flow_processor is None or
        _graph is None or
        _notifier is None or
        _analytics is None
    ):
        logger.error("Processing pipeline not initialized")
        return

    logger.info("Frame processing pipeline started")
    _is_ready = True

    while not _shutdown_flag:
        try:
            frame = await _frame_buffer.get(timeout=1.0)

            if frame is None:
                continue

            process_frame(frame)

        except asyncio.CancelledError:
            logger.info("Frame processing pipeline cancelled")
            break
        except Exception as e:
            _frame_error_count += 1
            logger.error(f"Pipeline error: {e}")
            await asyncio.sleep(0.1)

    _is_ready = False
    logger.info("Frame processing pipeline stopped")


# =============================================================================
# Lifespan Management
# =============================================================================

async def _cancel_task(task: Optional[asyncio.Task], grace_sec: float = 0.0) -> None:
    """Let a task finish within grace_sec, then cancel it and wait."""
    if task is None or task.done():
        return

    if grace_sec > 0:
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=grace_sec)
            return
        except asyncio.TimeoutError:
            pass

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _frame_buffer, _frame_consumer, _consumer_task
    global _flow_processor, _graph, _notifier, _analytics
    global _processing_task, _startup_time, _shutdown_flag, _session_generation

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    _shutdown_flag = False
    logger.info(f"Starting {settings.agent.name} {settings.agent.version}")

    port = int(os.environ.get("PORT", settings.server.port))
    logger.info(f"Configured port: {port}")

    # Ingestion
    logger.info(f"Stream URL: {settings.stream.url}")
    _frame_buffer = FrameBuffer(maxsize=settings.stream.max_queue_size)
    _frame_consumer = FrameConsumer(
        url=settings.stream.url,
        buffer=_frame_buffer,
        reconnect_backoff_ms=settings.stream.reconnect_backoff_ms,
        max_reconnect_attempts=settings.stream.max_reconnect_attempts,
    )
    _consumer_task = asyncio.create_task(
        _frame_consumer.run(),
        name="frame_consumer"
    )

    # Flow
    width = settings.processing.width
    height = settings.processing.height
    _flow_processor = FlowSignalProcessor(
        width=width,
        height=height,
        estimator=estimator_from_config(settings.optical_flow),
        log_every_n_frames=settings.logging.every_n_frames,
    )

    # Detection session
    _graph = create_detection_graph(settings)
    _graph.on_session_start(width, height)
    _session_generation = 0

    # Collaborators
    _notifier = LoggingSpeechNotifier(
        cooldown_ms=settings.speech.cooldown_ms,
        enabled=settings.speech.enabled,
    )
    _analytics = DetectionAnalytics()

    _processing_task = asyncio.create_task(
        process_frames(),
        name="frame_processing"
    )

    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    await _cancel_task(_processing_task)

    if _frame_consumer:
        await _frame_consumer.stop()
    await _cancel_task(_consumer_task, grace_sec=5.0)

    if _graph:
        _graph.on_session_stop()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="LoomWatch",
    description="Optical-flow obstacle detection with spoken alerts",
    version=settings.agent.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    event = get_current_event()
    return JSONResponse({
        "service": "LoomWatch",
        "version": settings.agent.version,
        "name": settings.agent.name,
        "status": "running",
        "detection": format_status(event) if event else None,
        "summary": format_metrics(event) if event else None,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the service ready to handle requests?

    Returns 200 if the stream is connected or the pipeline is running,
    503 otherwise.
    """
    consumer = get_frame_consumer()
    graph = get_graph()

    stream_connected = consumer.connected if consumer else False
    pipeline_ready = _is_ready and graph is not None and graph.active

    if stream_connected or pipeline_ready:
        return JSONResponse({
            "status": "ready",
            "stream_connected": stream_connected,
            "pipeline_running": pipeline_ready,
            "frames_processed": graph.detection_state.frame_index if pipeline_ready else 0,
        })

    return JSONResponse(
        {
            "status": "not_ready",
            "stream_connected": stream_connected,
            "pipeline_running": pipeline_ready,
        },
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    consumer = get_frame_consumer()
    buffer = get_frame_buffer()

    stream_metrics = {}
    if consumer and buffer:
        stream_metrics = {
            "stream_connected": consumer.connected,
            **consumer.metrics.to_dict(),
            "buffer_size": buffer.metrics()["size"],
            "buffer_dropped": buffer.metrics()["dropped_count"],
        }

    graph = get_graph()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "frame_errors": _frame_error_count,
        "stream": stream_metrics,
        "flow": _flow_processor.get_metrics() if _flow_processor else {},
        "detection": graph.get_metrics() if graph else {},
        "analytics": _analytics.snapshot().to_dict() if _analytics else {},
        "speech": _notifier.get_metrics() if _notifier else {},
    })


@app.get("/event")
async def event() -> JSONResponse:
    """Get the latest detection event."""
    current = get_current_event()

    if current is None:
        return JSONResponse(
            {"error": "No event available yet"},
            status_code=503,
        )

    return JSONResponse(current.model_dump(mode="json"))


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/events")
async def event_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint pushing each new detection event."""
    await websocket.accept()
    logger.info("Client connected to /ws/events")

    last_sent: Optional[DetectionEvent] = None
    try:
        while not _shutdown_flag:
            current = get_current_event()
            if current is not None and current is not last_sent:
                await websocket.send_json(current.model_dump(mode="json"))
                last_sent = current
            await asyncio.sleep(0.05)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/events")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "loomwatch.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
