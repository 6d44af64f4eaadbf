import logging
import os
import subprocess
import sys
import webbrowser

from cliptrail.core.errors import TransientIOError

log = logging.getLogger(__name__)


def open_url(url: str) -> bool:
    """Open a link in the default browser"""
    if not url or not url.strip():
        return False
    return webbrowser.open(url.strip())


def open_file(path: str) -> None:
    """Open a file with its default application"""
    if not os.path.exists(path):
        raise TransientIOError(f"File not found: {path}")

    if sys.platform == "win32":
        os.startfile(path)
        return

    opener = "open" if sys.platform == "darwin" else "xdg-open"
    try:
        subprocess.Popen([opener, path], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        raise TransientIOError(f"Could not open {path}: {e}") from e
