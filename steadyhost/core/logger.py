from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from steadyhost.core.events.redaction import redact_text

LOG_FILE = "steadyhost.log"


class RedactingFilter(logging.Filter):
    """Scrubs `password=...`-style assignments that installer output may echo into log lines."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        clean = redact_text(msg)
        if clean != msg:
            record.msg, record.args = clean, None
        return True


def setup_logging(log_dir: str = "logs", *, level: int = logging.INFO, console: bool = True) -> logging.Logger:
    """
    Configure the `steadyhost` logger: a rotating file under `log_dir` plus an
    optional bare console handler. Safe to call repeatedly; a new `log_dir`
    replaces the previous file handler.
    """
    os.makedirs(log_dir, exist_ok=True)
    text_path = os.path.abspath(os.path.join(log_dir, LOG_FILE))

    logger = logging.getLogger("steadyhost")
    logger.setLevel(level)
    logger.propagate = False

    for h in list(logger.handlers):
        if isinstance(h, RotatingFileHandler) and h.baseFilename != text_path:
            logger.removeHandler(h)
            h.close()
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        fh = RotatingFileHandler(text_path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        fh.addFilter(RedactingFilter())
        logger.addHandler(fh)

    consoles = [h for h in logger.handlers if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)]
    if console and not consoles:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        sh.addFilter(RedactingFilter())
        logger.addHandler(sh)
    elif not console:
        # --json / --events own stdout/stderr
        for h in consoles:
            logger.removeHandler(h)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger("steadyhost")
    return logging.getLogger(f"steadyhost.{name}")
