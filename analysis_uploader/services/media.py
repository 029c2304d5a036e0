"""
Media Selector - Single Responsibility: validate and probe a local video.

Uses OpenCV to read intrinsic dimensions and the first frame, which becomes
the local preview still.
"""
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import cv2

from ..errors import SelectionError
from ..models import UploadConfig
from ..protocols import IMediaSelector

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".3gp": "video/3gpp",
    ".mpeg": "video/mpeg",
    ".mpg": "video/mpeg",
    ".ts": "video/mp2t",
}


def is_video(path) -> bool:
    return Path(path).suffix.lower() in VIDEO_CONTENT_TYPES


def guess_content_type(path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in VIDEO_CONTENT_TYPES:
        return VIDEO_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


def _normalize_rotation(value: float) -> int:
    value = int(value) % 360
    return min((0, 90, 180, 270), key=lambda c: abs(c - value))


@dataclass(frozen=True)
class VideoProbe:
    """Intrinsic properties read from the container."""
    width: Optional[int]
    height: Optional[int]
    rotation: int = 0
    frame: Any = None


def probe_video(path: Path) -> VideoProbe:
    """
    Open the video and read dimensions, rotation and the first frame.

    Raises:
        SelectionError: the container cannot be opened (corrupt or unsupported)
    """
    cap = cv2.VideoCapture(str(path))
    try:
        if not cap.isOpened():
            raise SelectionError(f"Cannot read video: {path.name}")

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0) or None
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0) or None

        rotation = 0
        if hasattr(cv2, "CAP_PROP_ORIENTATION_META"):
            rotation = _normalize_rotation(cap.get(cv2.CAP_PROP_ORIENTATION_META) or 0)

        ok, frame = cap.read()
        if not ok and width is None and height is None:
            raise SelectionError(f"Cannot read video: {path.name}")
        return VideoProbe(width, height, rotation, frame if ok else None)
    finally:
        cap.release()


class PreviewHandle:
    """
    Revocable local preview (a JPEG still of the first frame).

    The owner must call ``release()`` once the selection is superseded.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path
        self._released = False

    @property
    def path(self) -> Optional[Path]:
        return None if self._released else self._path

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._path is not None:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove preview {self._path}: {e}")


@dataclass(frozen=True)
class SelectedMedia:
    """Result of a successful selection."""
    local_file_ref: Path
    content_type: str
    is_portrait: bool
    size: int
    preview: PreviewHandle
    width: Optional[int] = None
    height: Optional[int] = None
    rotation: int = 0


class MediaSelector(IMediaSelector):
    """Validates a local video and derives orientation plus a preview still."""

    def __init__(self, config: Optional[UploadConfig] = None):
        self._config = config or UploadConfig()

    def select(self, path: Path) -> SelectedMedia:
        path = Path(path)

        if not path.is_file():
            raise SelectionError(f"File not found: {path}")
        if not is_video(path):
            raise SelectionError(f"Unsupported file type: {path.suffix or path.name}")

        try:
            size = path.stat().st_size
        except OSError as e:
            raise SelectionError(f"Cannot read {path.name}: {e}") from e
        if size == 0:
            raise SelectionError(f"File is empty: {path.name}")

        probe = probe_video(path)
        is_portrait = self._orientation(probe)
        preview = self._make_preview(probe) if self._config.preview else PreviewHandle()

        logger.debug(
            f"Selected {path.name}: {probe.width}x{probe.height} rot={probe.rotation} "
            f"portrait={is_portrait} size={size}"
        )
        return SelectedMedia(
            local_file_ref=path,
            content_type=guess_content_type(path),
            is_portrait=is_portrait,
            size=size,
            preview=preview,
            width=probe.width,
            height=probe.height,
            rotation=probe.rotation,
        )

    def _orientation(self, probe: VideoProbe) -> bool:
        if not probe.width or not probe.height:
            return self._config.default_portrait
        width, height = probe.width, probe.height
        if probe.rotation in (90, 270):
            width, height = height, width
        return height > width

    def _make_preview(self, probe: VideoProbe) -> PreviewHandle:
        if probe.frame is None:
            return PreviewHandle()

        fd, name = tempfile.mkstemp(prefix="preview_", suffix=".jpg")
        os.close(fd)
        preview_path = Path(name)
        try:
            written = cv2.imwrite(str(preview_path), probe.frame)
        except cv2.error as e:
            logger.warning(f"Preview render failed: {e}")
            written = False

        if not written:
            preview_path.unlink(missing_ok=True)
            return PreviewHandle()
        return PreviewHandle(preview_path)
