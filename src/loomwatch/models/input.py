"""
Input Message Schema
====================

This module defines the Pydantic model for frame messages received from
the camera frame source over WebSocket.

Input Contract:
    {
        "source": "camera",
        "frame_id": 1234,
        "timestamp": 1707321234.567,
        "fps": 30,
        "image": "<base64 JPEG>"
    }

Example:
    from loomwatch.models.input import FrameMessage

    raw = await websocket.recv()
    message = FrameMessage.model_validate_json(raw)
"""

from pydantic import BaseModel, ConfigDict, Field


class FrameMessage(BaseModel):
    """
    Schema for frame messages received from the camera source.

    Attributes:
        source: Source identifier
        frame_id: Monotonically increasing frame counter
        timestamp: UNIX timestamp (seconds) when the frame was captured
        fps: Declared capture rate
        image: Base64-encoded JPEG frame data
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "source": "camera",
                "frame_id": 1234,
                "timestamp": 1707321234.567,
                "fps": 30,
                "image": "/9j/4AAQSkZJRg...",
            }
        }
    )

    source: str = Field(default="camera", description="Source identifier")
    frame_id: int = Field(..., ge=0, description="Monotonically increasing frame counter")
    timestamp: float = Field(..., gt=0, description="UNIX timestamp in seconds")
    fps: int = Field(default=30, ge=1, le=240, description="Declared capture FPS")
    image: str = Field(..., min_length=1, description="Base64-encoded JPEG frame data")
