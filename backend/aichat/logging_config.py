"""Root logger setup for the server and the terminal loop."""

from __future__ import annotations

import json
import logging
import sys

LEVELS = ("DEBUG", "INFO", "WARNING", "WARN", "ERROR")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CALLER_FORMAT = "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d %(funcName)s: %(message)s"


class JsonFormatter(logging.Formatter):
    def __init__(self, caller: bool = False):
        super().__init__()
        self.caller = caller

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.caller:
            payload["source"] = f"{record.filename}:{record.lineno}"
            payload["func"] = record.funcName
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "TEXT", caller: bool = False) -> None:
    """Configure the root logger on stdout.

    Unknown levels fall back to INFO and unknown formats to TEXT; either
    fallback is reported once as a warning.
    """
    problems: list[str] = []

    name = (level or "").upper()
    if name not in LEVELS:
        problems.append(f"invalid log_level: {level!r}, using 'INFO'")
        name = "INFO"
    if name == "WARN":
        name = "WARNING"

    kind = (fmt or "").upper()
    if kind not in ("TEXT", "JSON"):
        problems.append(f"invalid log_format: {fmt!r}, using 'TEXT'")
        kind = "TEXT"

    handler = logging.StreamHandler(sys.stdout)
    if kind == "JSON":
        handler.setFormatter(JsonFormatter(caller=caller))
    else:
        handler.setFormatter(logging.Formatter(CALLER_FORMAT if caller else TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(name)

    for problem in problems:
        logging.getLogger(__name__).warning(problem)
