import logging
import sys
from retouch_engine.config import settings # Use absolute import

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}

# Get the desired level from settings, default to INFO if invalid or not found
log_level_str = getattr(settings, 'LOGGING_LEVEL', 'INFO').upper()
log_level = LOG_LEVEL_MAP.get(log_level_str, logging.INFO)

log_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

# Console Handler
console_handler = logging.StreamHandler(sys.stdout) # Use stdout for console output
console_handler.setFormatter(log_formatter)

# Optional diagnostics file (render failures are easier to chase with a persistent log)
file_handler = None
_log_file_path = getattr(settings, 'LOG_FILE', None)
if _log_file_path:
    try:
        file_handler = logging.FileHandler(_log_file_path, encoding='utf-8')
        file_handler.setFormatter(log_formatter)
    except OSError as e:
        print(f"Warning: Could not configure file logging at '{_log_file_path}': {e}")
        file_handler = None

_configured_loggers = set()


def get_logger(name):
    """
    Gets a logger instance configured with the application's settings.
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Prevent adding handlers multiple times if get_logger is called repeatedly for the same name
    if not logger.handlers:
        logger.addHandler(console_handler)
        if file_handler:
            logger.addHandler(file_handler)

    # Prevent messages from propagating to the root logger if handlers are added
    logger.propagate = False
    _configured_loggers.add(name)

    return logger


def set_log_level(level_name):
    """
    Changes the level of every logger handed out so far (used by the CLI --log-level flag).

    Returns the numeric level that was applied.
    """
    global log_level
    log_level = LOG_LEVEL_MAP.get(str(level_name).upper(), logging.INFO)
    for name in _configured_loggers:
        logging.getLogger(name).setLevel(log_level)
    return log_level
