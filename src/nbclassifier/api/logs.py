import json
import logging
import sys
from typing import Any, Final

# Attributes every LogRecord carries. Anything else found on a record came in
# through `extra={...}` and is emitted as a context field.
RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

PLAIN_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    """
    Log formatter emitting one JSON object per line.

    Every line carries `level`, `msg`, `logger` and `time_ms` (the record's
    creation time in epoch milliseconds), the formatted traceback when an
    exception is attached, and any field passed via `extra={...}` such as
    `model`, `request_id` or `duration_ms`.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "time_ms": int(record.created * 1000),
        }

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in RECORD_FIELDS:
                entry[key] = value

        # Context values such as paths or label sets fall back to str().
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(json_logs: bool = True, level: str = "INFO") -> None:
    """
    Configure root logger output for the classification service.

    Installs a single stdout handler on the root logger, replacing any
    existing handlers so lines are not duplicated when called again (for
    example once per application startup in tests).

    Parameters
    ----------
    json_logs : bool
        If True, emit logs as structured JSON. If False, emit plain text.
    level : str
        Logging level to apply to the root logger (e.g. "DEBUG", "INFO").
    """
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if json_logs else logging.Formatter(PLAIN_FORMAT)
    )

    root.handlers[:] = [handler]
