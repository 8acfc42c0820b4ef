import logging
import sys
from pathlib import Path
from typing import Optional, Union


class _LibraryNoiseFilter(logging.Filter):
    """Keep our own records, only let third-party records through at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("nowly."):
            return True
        if record.name == "py.warnings":
            return record.levelno >= logging.ERROR
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    Configure root logging with a filtered console handler and, when
    ``log_file`` is given, a file handler that receives everything.

    Call once at startup, before the first log record is emitted.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove pre-existing handlers so reloads don't duplicate output.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    console.addFilter(_LibraryNoiseFilter())
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(path), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
