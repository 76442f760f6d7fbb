import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from ..utils.config import CONFIG

_LOGGER_NAME = "pgp_guardian"
_AUDIT_FIELDS = ("op", "key", "backend", "status", "duration_ms", "count")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _AUDIT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def get_logger(name: str = _LOGGER_NAME) -> logging.Logger:
    """Configure the package logger once; children propagate into it"""
    root = logging.getLogger(_LOGGER_NAME)
    if not any(not isinstance(h, logging.NullHandler) for h in root.handlers):
        level_name = os.getenv("PGG_LOG_LEVEL", "INFO").upper()
        root.setLevel(getattr(logging, level_name, logging.INFO))
        root.propagate = False

        handler = logging.StreamHandler(sys.stderr)
        if CONFIG.audit.json_stdout:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s - %(message)s"))
        root.addHandler(handler)
    return logging.getLogger(name)


@contextmanager
def audited(logger: logging.Logger, op: str, **fields) -> Iterator[None]:
    """Log start/outcome of an operation with its duration"""
    start = time.monotonic()
    try:
        yield
    except Exception:
        elapsed = int((time.monotonic() - start) * 1000)
        logger.warning("%s failed", op, extra={"op": op, "status": "error", "duration_ms": elapsed, **fields})
        raise
    elapsed = int((time.monotonic() - start) * 1000)
    logger.info("%s ok", op, extra={"op": op, "status": "ok", "duration_ms": elapsed, **fields})
