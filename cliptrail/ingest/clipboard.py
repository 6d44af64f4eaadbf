# Purpose: explicit handle on the OS clipboard, passed into ClipboardWatcher
# text through pyperclip, images through Pillow's ImageGrab
# the OS gives no portable change counter, so one is derived:
#   every change_count() call snapshots the clipboard and bumps the counter when the xxhash64 digest moves

import io
import logging
import os
import subprocess
import sys
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Optional

import pyperclip
import xxhash
from PIL import Image, ImageGrab

from cliptrail.core.errors import TransientIOError

log = logging.getLogger(__name__)


class ClipboardHandle(ABC):
    """What the clipboard watcher needs from a clipboard"""

    @abstractmethod
    def change_count(self) -> int:
        """Counter that moves whenever the clipboard contents change"""

    @abstractmethod
    def read_image(self) -> Optional[bytes]:
        ...

    @abstractmethod
    def read_text(self) -> Optional[str]:
        ...

    @abstractmethod
    def write_text(self, text: str) -> None:
        ...

    @abstractmethod
    def write_image(self, data: bytes) -> None:
        ...


def encode_png(image: Image.Image) -> bytes:
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


class SystemClipboard(ClipboardHandle):

    def __init__(self):
        self._lock = threading.Lock()
        self._digest: Optional[str] = None
        self._count = 0
        self._text: Optional[str] = None
        self._image: Optional[bytes] = None

    # ===== READ =====

    def _paste_text(self) -> Optional[str]:
        try:
            raw = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            raise TransientIOError(f"Clipboard text unavailable: {e}") from e
        return raw if isinstance(raw, str) else None

    def _grab_image(self) -> Optional[bytes]:
        try:
            data = ImageGrab.grabclipboard()
        except (OSError, NotImplementedError) as e:
            # no image support on this platform / session
            log.debug("grabclipboard error: %s", e)
            return None

        # a file list comes back as a list of filenames, not an image
        if isinstance(data, Image.Image):
            return encode_png(data)
        return None

    def change_count(self) -> int:
        text = self._paste_text()
        image = self._grab_image()

        hasher = xxhash.xxh64()
        hasher.update(b"T" + (text or "").encode("utf-8", errors="replace"))
        hasher.update(b"I" + (image or b""))
        digest = hasher.hexdigest()

        with self._lock:
            if digest != self._digest:
                self._digest = digest
                self._count += 1
            self._text = text
            self._image = image
            return self._count

    def read_image(self) -> Optional[bytes]:
        with self._lock:
            return self._image

    def read_text(self) -> Optional[str]:
        with self._lock:
            return self._text

    # ===== WRITE =====

    def write_text(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            raise TransientIOError(f"Could not copy text: {e}") from e

    def write_image(self, data: bytes) -> None:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except OSError as e:
            raise TransientIOError(f"Not an image: {e}") from e

        if sys.platform == "win32":
            _write_image_windows(image)
        elif sys.platform == "darwin":
            _write_image_macos(encode_png(image))
        else:
            _write_image_linux(encode_png(image))


def _write_image_windows(image: Image.Image) -> None:
    """Copy a PIL image to the Windows clipboard (CF_DIB)"""
    import ctypes

    output = io.BytesIO()
    # BMP includes a 14-byte file header; CF_DIB expects the DIB payload
    image.convert("RGB").save(output, "BMP")
    data = output.getvalue()[14:]

    GMEM_MOVEABLE = 0x0002
    CF_DIB = 8
    user32 = ctypes.windll.user32
    kernel32 = ctypes.windll.kernel32

    if not user32.OpenClipboard(None):
        raise TransientIOError("Could not open the clipboard")
    try:
        user32.EmptyClipboard()
        hglob = kernel32.GlobalAlloc(GMEM_MOVEABLE, len(data))
        if not hglob:
            raise TransientIOError("GlobalAlloc failed")
        lp = kernel32.GlobalLock(hglob)
        if not lp:
            raise TransientIOError("GlobalLock failed")
        ctypes.memmove(lp, data, len(data))
        kernel32.GlobalUnlock(hglob)
        # On success, the clipboard owns the memory handle
        if not user32.SetClipboardData(CF_DIB, hglob):
            raise TransientIOError("SetClipboardData failed")
    finally:
        user32.CloseClipboard()


def _write_image_macos(png: bytes) -> None:
    fd, path = tempfile.mkstemp(suffix=".png")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(png)
        script = f'set the clipboard to (read (POSIX file "{path}") as «class PNGf»)'
        _run(["osascript", "-e", script])
    finally:
        os.remove(path)


def _write_image_linux(png: bytes) -> None:
    if os.environ.get("WAYLAND_DISPLAY"):
        _run(["wl-copy", "--type", "image/png"], png)
    else:
        _run(["xclip", "-selection", "clipboard", "-t", "image/png", "-i"], png)


def _run(cmd, data: bytes = None) -> None:
    try:
        subprocess.run(cmd, input=data, check=True, timeout=5,
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.SubprocessError) as e:
        raise TransientIOError(f"{cmd[0]} failed: {e}") from e
