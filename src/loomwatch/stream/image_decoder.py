"""
Image Decoder
=============

Decodes base64 JPEG frames into grayscale OpenCV matrices for flow
estimation. This is the only place in the codebase that decodes images.
"""

import base64
import binascii
import logging

import cv2
import numpy as np

from loomwatch.stream.frame import Frame


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def decode_frame_grayscale(frame: Frame) -> np.ndarray:
    """
    Decode a base64 JPEG frame to a grayscale array.

    Args:
        frame: Frame with base64-encoded JPEG image

    Returns:
        Grayscale image (H, W), uint8

    Raises:
        ImageDecodeError: If decoding fails or the image is invalid
    """
    try:
        image_bytes = base64.b64decode(frame.image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(
            f"Base64 decode failed for frame {frame.frame_id}: {e}"
        ) from e

    buffer = np.frombuffer(image_bytes, np.uint8)
    if buffer.size == 0:
        raise ImageDecodeError(f"Empty image payload for frame {frame.frame_id}")

    gray = cv2.imdecode(buffer, cv2.IMREAD_GRAYSCALE)
    if gray is None:
        raise ImageDecodeError(
            f"Failed to decode frame {frame.frame_id}: cv2.imdecode returned None"
        )

    if gray.ndim != 2 or gray.dtype != np.uint8:
        raise ImageDecodeError(
            f"Invalid decoded image for frame {frame.frame_id}: "
            f"shape={gray.shape}, dtype={gray.dtype}"
        )

    return gray


def encode_grayscale_jpeg(gray: np.ndarray, quality: int = 90) -> str:
    """
    Encode a grayscale array as base64 JPEG.

    Used by frame sources and tests to build FrameMessage payloads.
    """
    ok, encoded = cv2.imencode(".jpg", gray, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ImageDecodeError("cv2.imencode failed")
    return base64.b64encode(encoded.tobytes()).decode("ascii")
