# Purpose: watch the screenshot folder, push every new screenshot file into the capture pipeline
# folder: bookmark from settings -> OS screenshot location -> ~/Desktop
# a directory change (mtime + entry count) triggers a scan; one full scan at start catches files made while not running
# only files named screenshot*.png / .jpg / .jpeg (any case) are picked up

import logging
import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from cliptrail.core.config import settings
from cliptrail.core.errors import TransientIOError
from cliptrail.db.models import Item, ScreenshotContent
from cliptrail.ingest.pipeline import CapturePipeline

log = logging.getLogger(__name__)

SCREENSHOT_PREFIX = "screenshot"
SCREENSHOT_EXTENSIONS = (".png", ".jpg", ".jpeg")


def is_screenshot_file(file_name: str) -> bool:
    name = file_name.lower()
    return name.startswith(SCREENSHOT_PREFIX) and name.endswith(SCREENSHOT_EXTENSIONS)


# === FOLDER RESOLUTION ===

def macos_screencapture_location() -> Optional[str]:
    """Value of `defaults read com.apple.screencapture location`, if set"""
    try:
        result = subprocess.run(
            ["defaults", "read", "com.apple.screencapture", "location"],
            capture_output=True, text=True, timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    location = result.stdout.strip()
    if result.returncode != 0 or not location:
        return None
    return os.path.expanduser(location)


def os_screenshot_location() -> Optional[Path]:
    """Where the OS saves screenshots, when it says so"""
    if sys.platform == "darwin":
        location = macos_screencapture_location()
        return Path(location) if location else None

    # Windows / Linux: checks OneDrive first, then local Pictures
    home = Path(os.path.expanduser("~"))
    for folder in (home / "OneDrive" / "Pictures" / "Screenshots", home / "Pictures" / "Screenshots"):
        if folder.is_dir():
            return folder
    return None


def default_screenshot_location() -> Path:
    return Path(os.path.expanduser("~")) / "Desktop"


def resolve_screenshot_folder(bookmark: Optional[str] = None) -> Path:
    """user bookmark -> OS setting -> Desktop"""
    if bookmark:
        folder = Path(os.path.expanduser(bookmark))
        if folder.is_dir():
            return folder
        log.warning("[WARN] Screenshot folder bookmark is stale: %s", bookmark)

    folder = os_screenshot_location()
    if folder is not None:
        return folder

    return default_screenshot_location()


class FolderAccess:
    """
    Scoped access to a watched directory
    holds an open directory descriptor where the OS allows it; release() closes it
    usable as a context manager for one-off scans
    """

    def __init__(self, path):
        self.path = Path(path)
        self.fd: Optional[int] = None
        self.active = False

    def acquire(self) -> Path:
        if not self.path.is_dir():
            raise TransientIOError(f"Screenshot folder does not exist: {self.path}")
        if hasattr(os, "O_DIRECTORY"):
            try:
                self.fd = os.open(self.path, os.O_RDONLY | os.O_DIRECTORY)
            except OSError as e:
                raise TransientIOError(f"Could not open {self.path}: {e}") from e
        self.active = True
        return self.path

    def release(self) -> None:
        if self.fd is not None:
            os.close(self.fd)
            self.fd = None
        self.active = False

    def signature(self) -> Tuple[int, int]:
        """(mtime_ns, entry count): changes whenever an entry is added, removed or renamed"""
        try:
            st = os.fstat(self.fd) if self.fd is not None else os.stat(self.path)
            count = len(os.listdir(self.path))
        except OSError as e:
            raise TransientIOError(f"Could not stat {self.path}: {e}") from e
        # count catches what a coarse mtime clock (FAT, network shares) misses
        return st.st_mtime_ns, count

    def __enter__(self) -> Path:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


# === MAIN WATCHER ===

class ScreenshotWatcher:

    def __init__(
            self,
            pipeline: CapturePipeline,
            folder=None,
            bookmark: Optional[str] = None,
            poll_seconds: float = None,
    ):
        self.pipeline = pipeline
        self.folder = Path(folder) if folder else None  # fixed folder skips resolution
        self.bookmark = bookmark if bookmark is not None else settings.screenshot_folder_bookmark
        self.poll_seconds = poll_seconds or settings.screenshot_poll_seconds

        self.current_folder: Optional[Path] = None
        self.access: Optional[FolderAccess] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Stats counters
        self.total_screenshots = 0

    @property
    def is_monitoring(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def resolve_folder(self) -> Path:
        return self.folder or resolve_screenshot_folder(self.bookmark)

    def scan(self) -> List[Item]:
        """List the folder once and push every screenshot not stored yet"""
        folder = self.current_folder or self.resolve_folder()
        pushed: List[Item] = []

        try:
            with FolderAccess(folder) as path:
                entries = list(os.scandir(path))
        except (TransientIOError, OSError) as e:
            log.warning("[WARN] Could not list %s, retrying on next change: %s", folder, e)
            return pushed

        for entry in entries:
            if not is_screenshot_file(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
            except OSError:
                continue
            if self.pipeline.dedup.screenshot_exists(entry.name):
                continue

            with self._lock:
                self.total_screenshots += 1
            log.info("[NEW] Screenshot detected: %s", entry.name)
            candidate = Item(payload=ScreenshotContent(
                file_path=str(Path(entry.path).resolve()),
                file_name=entry.name,
            ))
            self.pipeline.submit(candidate)
            pushed.append(candidate)

        return pushed

    def _loop(self, access: FolderAccess, stop: threading.Event, last: Tuple[int, int]) -> None:
        while not stop.wait(self.poll_seconds):
            try:
                current = access.signature()
            except TransientIOError as e:
                log.warning("[WARN] %s", e)
                continue
            if current != last:
                last = current
                try:
                    self.scan()
                except Exception:
                    log.exception("[ERROR] Screenshot scan failed")

    def start(self) -> bool:
        """Acquire the folder, start the watch thread, run the startup scan"""
        with self._lock:
            if self.is_monitoring:
                return True

            folder = self.resolve_folder()
            access = FolderAccess(folder)
            try:
                access.acquire()
                last = access.signature()
            except TransientIOError as e:
                access.release()
                log.error("[ERROR] Could not watch screenshots: %s", e)
                return False

            self.access = access
            self.current_folder = folder
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._loop, args=(access, self._stop, last), daemon=True, name="ScreenshotMonitor"
            )
            self._thread.start()

        log.info("[SYSTEM] Watching folder: %s", folder)
        self.scan()
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the watch thread and release the folder (idempotent)"""
        with self._lock:
            thread, access = self._thread, self.access
            self._thread = None
            self.access = None
            self._stop.set()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        if access is not None:
            access.release()
            log.info("[SYSTEM] Stopped watching %s", access.path)

    def restart(self) -> bool:
        self.stop()
        self.current_folder = None
        return self.start()

    def set_folder(self, bookmark: Optional[str]) -> bool:
        """Point the watcher at a new user-chosen folder (None = default resolution)"""
        self.bookmark = bookmark
        self.folder = None
        if self.is_monitoring:
            return self.restart()
        self.current_folder = None
        return True
