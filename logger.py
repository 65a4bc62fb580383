# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "pos_checkout"

# Default logging configuration
DEFAULT_CONFIG = {
    "level": "INFO",
    "file": "logs/pos.log",
    "max_size": 1048576,  # 1MB
    "backup_count": 3,
    "modules": {}  # e.g. {"checkout": "DEBUG"}
}

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}

# Handlers are attached by setup_logger(); until then records propagate to root.
logger = logging.getLogger(LOGGER_NAME)

# Child loggers given their own level by the last setup_logger() call.
_module_loggers = set()


def setup_logger(config=None):
    """Set up the checkout logger from the 'logging' section of the config."""
    if config is None:
        config = {}

    log_config = {**DEFAULT_CONFIG, **config.get("logging", {})}

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(LOG_LEVELS.get(str(log_config["level"]).upper(), logging.INFO))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_config["file"]:
        try:
            log_dir = os.path.dirname(log_config["file"])
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_config["file"],
                maxBytes=log_config["max_size"],
                backupCount=log_config["backup_count"]
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to set up file logging: {e}")

    _set_module_levels(logger, log_config.get("modules") or {})
    return logger


def configure_logger(config):
    """Reconfigure the logger with new settings."""
    global logger

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger = setup_logger(config)
    return logger


def _set_module_levels(logger, modules):
    """Give child loggers (pos_checkout.<name>) their own level."""
    for name in _module_loggers:
        logging.getLogger(f"{LOGGER_NAME}.{name}").setLevel(logging.NOTSET)
    _module_loggers.clear()

    for name, level in modules.items():
        value = LOG_LEVELS.get(str(level).upper())
        if value is None:
            logger.warning(f"Unknown log level {level!r} for module {name}")
            continue
        logging.getLogger(f"{LOGGER_NAME}.{name}").setLevel(value)
        _module_loggers.add(name)
