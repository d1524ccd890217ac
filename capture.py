import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

import cv2
from PIL import Image

import config

logger = logging.getLogger("text_capture.capture")

CAPTURE_FILENAME = "capture.png"
CAMERA_DENIED_MESSAGE = (
    "Camera access was denied or is unavailable. Please check your camera permissions."
)
CAMERA_UNSUPPORTED_MESSAGE = "Camera access is not supported on this system."


class CameraError(Exception):
    """Raised when the camera cannot be opened or read."""


@dataclass(frozen=True, eq=False)
class ImageEntry:
    """An image waiting for (or done with) text extraction."""

    name: str
    data: bytes
    mime_type: str
    encoded_payload: str

    @property
    def size(self) -> int:
        return len(self.data)


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode raw image bytes as a base64 data URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def guess_image_type(path: Path) -> Optional[str]:
    """
    Return the image mime type for path, or None if it is not an image.

    Args:
        path: File path.

    Returns:
        Mime type such as "image/png" or None.
    """
    if path.suffix.lower() not in config.IMAGE_EXTENSIONS:
        return None
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type and mime_type.startswith("image/"):
        return mime_type
    return f"image/{path.suffix.lower().lstrip('.')}"


def load_image_file(path: Path) -> ImageEntry:
    """
    Read an image file into an ImageEntry.

    Args:
        path: Image file path.

    Returns:
        The entry with its data URL payload.

    Raises:
        ValueError: If the file is too large or not an image.
        OSError: If the file cannot be read.
    """
    size = path.stat().st_size
    if size > config.MAX_IMAGE_BYTES:
        raise ValueError(f"{path.name}: Image size should be less than 4MB.")

    mime_type = guess_image_type(path)
    if mime_type is None:
        raise ValueError(f"{path.name}: Not a supported image file.")

    data = path.read_bytes()
    return ImageEntry(
        name=path.name,
        data=data,
        mime_type=mime_type,
        encoded_payload=to_data_url(data, mime_type),
    )


def select_files(paths: Iterable[str | Path]) -> tuple[list[ImageEntry], list[str]]:
    """
    Validate selected files and load the acceptable ones.

    Args:
        paths: Files chosen by the user.

    Returns:
        Tuple of (entries, errors); one error message per rejected file.
    """
    entries: list[ImageEntry] = []
    errors: list[str] = []
    for raw in paths:
        path = Path(raw)
        try:
            entries.append(load_image_file(path))
        except ValueError as exc:
            logger.warning("Rejected %s: %s", path, exc)
            errors.append(str(exc))
        except OSError as exc:
            logger.exception("Could not read %s: %s", path, exc)
            errors.append(f"{path.name}: Could not read file.")
    logger.info("Selected %d file(s), rejected %d", len(entries), len(errors))
    return entries, errors


class CameraSession:
    """Single live camera stream that can be previewed and captured."""

    def __init__(self, index: int = config.CAMERA_INDEX, opener: Callable = cv2.VideoCapture):
        self.index = index
        self._opener = opener
        self._stream = None
        self.has_permission: Optional[bool] = None

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """
        Open the camera, replacing any stream that is already running.

        Raises:
            CameraError: If the device is denied, missing or unsupported.
        """
        self.release()
        self.has_permission = None
        try:
            stream = self._opener(self.index)
        except (cv2.error, OSError) as exc:
            logger.exception("Camera backend failed: %s", exc)
            self.has_permission = False
            raise CameraError(CAMERA_UNSUPPORTED_MESSAGE) from exc

        if not stream.isOpened():
            stream.release()
            self.has_permission = False
            logger.warning("Camera %s could not be opened", self.index)
            raise CameraError(CAMERA_DENIED_MESSAGE)

        self._stream = stream
        self.has_permission = True
        logger.info("Camera %s opened", self.index)

    def read_frame(self):
        """Return the current BGR frame from the stream."""
        if self._stream is None:
            raise CameraError("The camera is not active.")
        ok, frame = self._stream.read()
        if not ok or frame is None:
            raise CameraError("Could not read a frame from the camera.")
        return frame

    def preview_image(self) -> Image.Image:
        """Current frame as an RGB Pillow image for the live preview."""
        frame = self.read_frame()
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def capture(self) -> ImageEntry:
        """
        Rasterize the current frame to PNG and stop the stream.

        Returns:
            ImageEntry for the captured frame.
        """
        try:
            frame = self.read_frame()
            ok, buffer = cv2.imencode(".png", frame)
            if not ok:
                raise CameraError("Could not encode the captured frame.")
        finally:
            self.release()

        data = buffer.tobytes()
        logger.info("Captured frame %sx%s (%d bytes)", frame.shape[1], frame.shape[0], len(data))
        return ImageEntry(
            name=CAPTURE_FILENAME,
            data=data,
            mime_type="image/png",
            encoded_payload=to_data_url(data, "image/png"),
        )

    def release(self) -> None:
        """Stop the stream if one is running."""
        if self._stream is not None:
            try:
                self._stream.release()
            finally:
                self._stream = None
            logger.debug("Camera %s released", self.index)
