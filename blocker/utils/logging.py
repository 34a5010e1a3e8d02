import logging
import os

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Create logger for blocker modules
logger = logging.getLogger('blocker')
logger.setLevel(logging.INFO)

# Add a file handler for debug logging when requested
_debug_log_path = os.getenv('BLOCKER_DEBUG_LOG')
if _debug_log_path:
    try:
        file_handler = logging.FileHandler(_debug_log_path)
        file_handler.setLevel(logging.DEBUG)
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except Exception as e:
        logger.warning(f"Could not set up file logging: {e}")


def set_developer_mode(state: bool) -> None:
    """Switch the blocker logger between normal and verbose output."""
    logger.setLevel(logging.DEBUG if state else logging.INFO)
    logger.debug(f"Developer mode {'enabled' if state else 'disabled'}")


def is_developer_mode() -> bool:
    return logger.level == logging.DEBUG
