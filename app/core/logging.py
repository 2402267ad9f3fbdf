"""
Logging configuration for the attendance backend
"""
import logging
import sys

from app.core.config import settings
from app.core.constants import SERVICE_NAME

LOG_FORMAT = "%(asctime)s - %(service)s - %(name)s - %(levelname)s - %(message)s"


class ServiceNameFilter(logging.Filter):
    """Stamp every record with the service name so shared log sinks can split streams."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = SERVICE_NAME
        return True


def setup_logging() -> None:
    """Send application logs to stdout at settings.LOG_LEVEL."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ServiceNameFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s env=%s attendance_tz=%s",
        settings.LOG_LEVEL, settings.APP_ENV, settings.ATTENDANCE_TZ,
    )
