"""Logging configuration for Huddle.

Loggers are configured from a YAML dictConfig under ``config/``. The file is
chosen by ``LOG_CONFIG`` when set, otherwise ``logging.<ENVIRONMENT>.yaml``
with ``logging.yaml`` as the fallback. ``LOG_LEVEL`` then overrides the level
of the ``huddle`` logger tree so server and sync client code share one knob.
"""

import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DIR = Path(__file__).parent.parent.parent / "config"
ROOT_LOGGER = "huddle"


def resolve_config_path(
    explicit: Optional[str] = None, environment: Optional[str] = None
) -> Path:
    """Pick the logging config file for this process."""
    override = explicit or os.getenv("LOG_CONFIG")
    if override:
        return Path(override)

    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    env_config = CONFIG_DIR / f"logging.{environment}.yaml"
    if env_config.exists():
        return env_config
    return CONFIG_DIR / "logging.yaml"


def setup_logging(
    config_path: Optional[str] = None,
    level: Optional[str] = None,
    default_level: int = logging.INFO,
) -> Path:
    """
    Configure logging from YAML.

    Args:
        config_path: Explicit config file, wins over ``LOG_CONFIG``
        level: Level name applied to the ``huddle`` logger after loading
        default_level: Level for ``basicConfig`` when no usable file exists

    Returns:
        The config path that was tried
    """
    path = resolve_config_path(config_path)
    logger = logging.getLogger(__name__)

    if path.exists():
        try:
            with open(path, "r") as f:
                logging.config.dictConfig(yaml.safe_load(f))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logging.basicConfig(level=default_level)
            logger.warning(f"Failed to load logging config {path}, using basic config: {e}")
        else:
            logger.info(f"Logging configured from {path}")
    else:
        logging.basicConfig(level=default_level)
        logger.warning(f"Logging config file not found at {path}")

    level = level or os.getenv("LOG_LEVEL")
    if level:
        logging.getLogger(ROOT_LOGGER).setLevel(level.upper())
    return path


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for ``__name__``)."""
    return logging.getLogger(name)


def configure_sqlalchemy_logging(echo: bool = False, echo_pool: bool = False) -> None:
    """Route SQL statement and pool chatter through the ``SQL_ECHO`` setting."""
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if echo else logging.WARNING
    )
    logging.getLogger("sqlalchemy.pool").setLevel(
        logging.INFO if echo_pool else logging.WARNING
    )


def log_startup_info(settings) -> None:
    """Log the settings that shape membership and sync behaviour."""
    logger = get_logger(__name__)
    logger.info(f"{settings.PROJECT_NAME} backend starting ({settings.ENVIRONMENT})")
    logger.info(f"Invitation links: {settings.INVITE_BASE_URL.rstrip('/')}/invite/<token>")
    logger.info(
        f"Message pages: default {settings.MESSAGE_PAGE_SIZE}, "
        f"max {settings.MAX_MESSAGE_PAGE_SIZE}"
    )
    if settings.FEED_RELAY_ENABLED:
        logger.info(
            f"Change feed relay: exchange {settings.FEED_EXCHANGE} on "
            f"{settings.RABBITMQ_HOST}:{settings.RABBITMQ_PORT}"
        )
    else:
        logger.info("Change feed relay: disabled")


def log_shutdown_info(settings) -> None:
    get_logger(__name__).info(f"{settings.PROJECT_NAME} backend shutting down")
