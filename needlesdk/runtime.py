"""One-time OpenCV runtime initialisation.

Loaders are registered by name ("desktop", "mobile"); ``ensure_initialized``
picks one from the detected platform unless told otherwise, runs it once under
a lock and hands back the same loader on every later call.
"""
from __future__ import annotations

import logging
import os
import platform as _platform
import sys
import threading
from enum import Enum
from typing import Callable, Dict, Optional

import cv2

from .errors import RuntimeInitError

logger = logging.getLogger(__name__)


class Platform(Enum):
    WINDOWS = "windows"
    MAC = "mac"
    LINUX = "linux"
    ANDROID = "android"
    UNKNOWN = "unknown"


def is_android() -> bool:
    return hasattr(sys, "getandroidapilevel") or "ANDROID_ROOT" in os.environ


def detect_platform() -> Platform:
    if is_android():
        return Platform.ANDROID
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if sys.platform == "darwin":
        return Platform.MAC
    if sys.platform.startswith("linux"):
        return Platform.LINUX
    return Platform.UNKNOWN


class VisionLoader:
    """Base loader: checks that cv2 exposes what the matcher needs."""

    name = "base"
    required = ("cvtColor", "resize", "matchTemplate", "minMaxLoc", "imdecode", "imencode")

    def __init__(self, num_threads: Optional[int] = None):
        self.num_threads = num_threads
        self.loaded = False

    @property
    def opencv_version(self) -> str:
        return cv2.__version__ if self.loaded else "not loaded"

    @property
    def platform_name(self) -> str:
        return self.name

    def load(self) -> None:
        missing = [fn for fn in self.required if not hasattr(cv2, fn)]
        if missing:
            raise RuntimeInitError(f"OpenCV build lacks {', '.join(missing)}")
        if self.num_threads is not None:
            cv2.setNumThreads(int(self.num_threads))
        self.loaded = True


class DesktopLoader(VisionLoader):
    name = "desktop"

    @property
    def platform_name(self) -> str:
        return f"Desktop {detect_platform().name} ({_platform.machine() or 'unknown arch'})"


class MobileLoader(VisionLoader):
    name = "mobile"

    @property
    def platform_name(self) -> str:
        level = getattr(sys, "getandroidapilevel", None)
        return f"Android (API {level()})" if level else "Mobile (unknown version)"

    def load(self) -> None:
        super().load()
        cv2.setUseOptimized(True)


_LOADERS: Dict[str, Callable[..., VisionLoader]] = {
    "desktop": DesktopLoader,
    "mobile": MobileLoader,
}

_lock = threading.Lock()
_loader: Optional[VisionLoader] = None
_last_error: Optional[BaseException] = None


def register_loader(name: str, factory: Callable[..., VisionLoader]) -> None:
    _LOADERS[name] = factory


def default_variant() -> str:
    return "mobile" if detect_platform() is Platform.ANDROID else "desktop"


def ensure_initialized(variant: Optional[str] = None, num_threads: Optional[int] = None) -> VisionLoader:
    global _loader, _last_error
    if _loader is not None:
        return _loader
    with _lock:
        if _loader is not None:
            return _loader
        name = variant or default_variant()
        factory = _LOADERS.get(name)
        if factory is None:
            _last_error = RuntimeInitError(f"no loader registered for '{name}'")
            raise _last_error
        try:
            loader = factory(num_threads=num_threads)
            loader.load()
        except RuntimeInitError as e:
            _last_error = e
            raise
        except Exception as e:
            _last_error = e
            raise RuntimeInitError(f"OpenCV initialisation failed: {e}") from e
        _loader = loader
        logger.info("OpenCV %s initialised on %s", loader.opencv_version, loader.platform_name)
        return loader


def is_initialized() -> bool:
    return _loader is not None


def get_loader() -> Optional[VisionLoader]:
    return _loader


def last_error() -> Optional[BaseException]:
    return _last_error


def reset() -> None:
    """Forget the current loader (tests)."""
    global _loader, _last_error
    with _lock:
        _loader = None
        _last_error = None
