import logging
from pathlib import Path
from typing import Optional

_LOG_FMT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_BLUE  = '\033[94m'   # bright blue
_RESET = '\033[0m'
_PATH_RE = __import__('re').compile(
    r'(?:'
    r'[\w./\\-]+/[\w./\\-]+'
    r'|'
    r'\w[\w._-]*\.(?:json|js|mjs|map|ts|tsx|jsx|html|css|png|svg|ico|log)'
    r')'
)

_handlers = []


class _ColorStreamFormatter(logging.Formatter):
    """Stream formatter that renders file paths in bright blue."""
    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        return _PATH_RE.sub(lambda m: f"{_BLUE}{m.group()}{_RESET}", msg)


def configure_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """
    Install the file and console handlers on the root logger.

    Calling it again replaces the handlers installed by a previous call.
    """
    reset_logging()
    root_logger = logging.getLogger()

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_LOG_FMT))
        _handlers.append(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_handler.setFormatter(_ColorStreamFormatter(_LOG_FMT))
    _handlers.append(stream_handler)

    root_logger.setLevel(logging.DEBUG)
    for handler in _handlers:
        root_logger.addHandler(handler)

    # watchdog is chatty at DEBUG
    logging.getLogger('watchdog').setLevel(logging.INFO)


def reset_logging() -> None:
    """Remove the handlers installed by configure_logging."""
    root_logger = logging.getLogger()
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()
