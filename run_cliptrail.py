"""
Complete ClipTrail startup script
Runs everything: DB init, capture pipeline, clipboard monitor, screenshot monitor, API server
"""
import logging
import sys

from cliptrail.core.config import settings
from cliptrail.core.errors import StorageError
from cliptrail.core.logging import configure_logging

log = logging.getLogger("cliptrail.startup")


def build_service():
    """Open the database; a missing/locked database is fatal"""
    from cliptrail.service import ClipTrail

    log.info("[STARTUP] Initializing database...")
    try:
        service = ClipTrail().open()
    except StorageError as e:
        log.critical("[STARTUP] Database unavailable: %s", e)
        sys.exit(1)
    log.info("[STARTUP] Database initialized")
    return service


def start_monitors(service):
    service.start()
    status = service.monitor_status()
    log.info("[STARTUP] Clipboard monitor: %s", "running" if status["clipboard"] else "off")
    log.info("[STARTUP] Screenshot monitor: %s", "running" if status["screenshots"] else "off")


def run_api_server(service):
    """Start FastAPI server (blocks)"""
    import uvicorn
    from cliptrail.api.server import app, set_service

    set_service(service)
    log.info("[STARTUP] Starting API server on http://%s:%d...", settings.api_host, settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,  # Disable reload since we're managing everything
        log_level=settings.log_level.lower(),
    )


def main():
    configure_logging(settings.log_level)
    log.info("=" * 60)
    log.info("ClipTrail - Complete Startup")
    log.info("=" * 60)

    service = build_service()
    start_monitors(service)

    try:
        run_api_server(service)
    except KeyboardInterrupt:
        log.info("[SHUTDOWN] Stopping ClipTrail...")
    finally:
        service.stop()


if __name__ == "__main__":
    main()
