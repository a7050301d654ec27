"""Logging setup for the app process."""
import logging

from app.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once; level defaults to settings.log_level."""
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)
    logging.getLogger("app").setLevel(level_name)
    # google-genai / httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
