# Purpose: runs both clipboard and screenshot watchers at the same time
# This is an alternative to run_cliptrail.py - runs ONLY the watchers, no API server

import logging
import sys
import time

from cliptrail.core.config import settings
from cliptrail.core.errors import StorageError
from cliptrail.core.logging import configure_logging
from cliptrail.service import ClipTrail

log = logging.getLogger(__name__)


def main(check_seconds: float = 5.0):
    """Starts both monitors and restarts whichever one dies"""
    configure_logging(settings.log_level)
    log.info("=" * 60)
    log.info("ClipTrail - Starting All Watchers (Ctrl+C to stop)")
    log.info("=" * 60)

    try:
        service = ClipTrail().open()
    except StorageError as e:
        log.critical("[SYSTEM] Database unavailable: %s", e)
        sys.exit(1)

    service.start()
    wanted = {
        "clipboard": settings.auto_start_clipboard_monitoring,
        "screenshots": settings.auto_start_screenshot_monitoring,
    }

    try:
        # Keep main thread alive and watch the monitor threads
        while True:
            time.sleep(check_seconds)
            for name, running in service.monitor_status().items():
                if wanted[name] and not running:
                    log.warning("[WARN] %s watcher stopped unexpectedly, restarting", name)
                    service.start_monitor(name)
    except KeyboardInterrupt:
        log.info("[SYSTEM] Shutting down all watchers...")
    finally:
        service.stop()
        log.info("[SYSTEM] All watchers stopped. Exiting ClipTrail, Goodbye!")


if __name__ == "__main__":
    main()
