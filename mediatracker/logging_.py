import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from mediatracker.settings import log_path


def setup_logging(level: str = "INFO", file_path: Optional[Path] = None) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if root.handlers:
        return

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    root.addHandler(ch)

    file_path = file_path or log_path()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fh = RotatingFileHandler(str(file_path), maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # Chatty third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("rebulk").setLevel(logging.WARNING)
