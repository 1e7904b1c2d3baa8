import json
import logging
import os
import sys

DEFAULT_SERVICE_LOG = "/tmp/hubmark-sync.log"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (plus exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str, pattern: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    return logging.Formatter(pattern, datefmt=_DATEFMT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging for the execution mode.

    Args:
        mode: "cli" logs to stderr (stdout stays clean for reports and
            ``--json`` output); "service" logs to a file for scheduled,
            unattended runs.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Log file path.  In cli mode it adds a file handler next
            to stderr; in service mode it overrides LOG_FILE.
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for service mode, INFO for cli mode.
        LOG_FILE: Log file path for service mode.
                  Default: /tmp/hubmark-sync.log
    """
    default_level = "WARNING" if mode == "service" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "service":
        target = log_file or os.getenv("LOG_FILE", DEFAULT_SERVICE_LOG)
        file_handler = logging.FileHandler(target, mode="a")
        file_handler.setFormatter(
            _make_formatter(
                debug_format, "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
            )
        )
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            _make_formatter(debug_format, "[%(asctime)s] [%(levelname)s] %(message)s")
        )
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(
                _make_formatter(
                    debug_format,
                    "[%(asctime)s] [%(levelname)s] %(name)s %(message)s",
                )
            )
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Quiet the HTTP stack unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
