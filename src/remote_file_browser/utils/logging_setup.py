"""
Logging Setup - Colored console output and optional timestamped log file
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from colorama import Fore, Style, just_fix_windows_console

_HANDLER_MARK = "_remote_file_browser_handler"

LEVEL_COLORS = {
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
    logging.ERROR: Fore.RED,
    logging.WARNING: Fore.YELLOW,
    logging.INFO: Fore.RESET,
    logging.DEBUG: Fore.CYAN,
}

LOG_FORMAT = "[%(asctime)s] [%(levelname)-8s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter colouring the whole entry by level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno, Fore.RESET)
        return f"{color}{message}{Style.RESET_ALL}"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    colored: bool = True,
) -> Optional[Path]:
    """
    Configure the ``remote_file_browser`` logger.

    Calling it again replaces the handlers it installed before and leaves
    other handlers alone.

    Args:
        level: Logging level (name or number)
        log_dir: Folder for a timestamped log file (no file if None)
        colored: Colour console output with colorama

    Returns:
        Path of the log file, or None
    """
    package_logger = logging.getLogger("remote_file_browser")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            package_logger.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler()
    if colored:
        just_fix_windows_console()
        console.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    else:
        console.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    setattr(console, _HANDLER_MARK, True)
    package_logger.addHandler(console)

    log_file = None
    if log_dir is not None:
        log_folder = Path(log_dir)
        log_folder.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_folder / f"remote_file_browser_{timestamp}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        setattr(file_handler, _HANDLER_MARK, True)
        package_logger.addHandler(file_handler)
        package_logger.info(f"Log file created: {log_file}")

    return log_file
