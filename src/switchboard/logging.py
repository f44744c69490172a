"""Centralized logging configuration for Switchboard.

Embedders that already configure logging can skip this module; the library
only ever logs through module-level loggers under ``switchboard.*``.

Logging Levels:
- DEBUG: Registry mutations, requests sent and settled, routing decisions
- INFO: Executions settled, confirmation prompts, connection changes
- WARNING: Failed executions, timeouts, dropped envelopes
- ERROR: Handler exceptions (with traceback)

Messages are short event names ("execution_settled"); details go in
``extra`` so the JSONL handler can keep them structured.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TextIO

DEFAULT_LOG_RETENTION_DAYS = 7

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Payloads routed to handlers can carry credentials; keep them out of log files.
DEFAULT_REDACT_PATTERNS: list[str] = [
    r"\b(sk-[A-Za-z0-9_-]{20,})\b",
    r"\b(ghp_[A-Za-z0-9]{20,})\b",
    r"\b(xox[baprs]-[A-Za-z0-9-]{10,})\b",
    r"\b[A-Z0-9_]+(?:KEY|TOKEN|SECRET|PASSWORD)\s*[=:]\s*([^\s\"']{8,})",
    r"\bBearer\s+([A-Za-z0-9._\-+=]{20,})\b",
]

# Extras lifted to the top level of a JSONL entry so one request or
# execution can be followed across records with a plain grep
TRACE_KEYS = ("correlation_id", "execution_id", "instance_token", "component_id")

# LogRecord attributes that are not caller-supplied extras
_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "component"}


def mask_secret(secret: str) -> str:
    """Keep the first and last four characters of long secrets."""
    if len(secret) < 12:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


@dataclass
class SecretRedactor:
    """Masks secrets in log text.

    Patterns with a capture group mask only the group, so prefixes such as
    ``API_KEY=`` stay readable.
    """

    patterns: list[re.Pattern[str]] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.patterns:
            self.patterns = [
                re.compile(p, re.IGNORECASE) for p in DEFAULT_REDACT_PATTERNS
            ]

    def redact(self, text: str) -> str:
        if not self.enabled or not text:
            return text
        for pattern in self.patterns:
            text = pattern.sub(_mask_match, text)
        return text


def _mask_match(match: re.Match[str]) -> str:
    whole = match.group(0)
    if not match.lastindex:
        return mask_secret(whole)
    start, end = match.span(1)
    offset = match.start(0)
    return (
        whole[: start - offset]
        + mask_secret(match.group(1))
        + whole[end - offset :]
    )


_redactor = SecretRedactor()


def prune_old_logs(
    logs_dir: Path,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    suffix: str = ".jsonl",
) -> int:
    """Delete log files whose last write is older than the retention period.

    Returns:
        Number of files deleted.
    """
    if not logs_dir.is_dir():
        return 0

    cutoff = (datetime.now(UTC) - timedelta(days=retention_days)).timestamp()
    deleted = 0
    for path in logs_dir.glob(f"*{suffix}"):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError:
            continue  # Another process may have removed it
    return deleted


def _component(record: logging.LogRecord) -> str:
    """switchboard.gateway.gateway -> gateway; foreign loggers keep their root."""
    head, _, rest = record.name.partition(".")
    if head == "switchboard" and rest:
        return rest.split(".", 1)[0]
    return head


def _record_extra(record: logging.LogRecord) -> dict[str, object]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
    }


class JSONLHandler(logging.Handler):
    """Writes one JSON object per record to ``<logs_dir>/YYYY-MM-DD.jsonl``.

    Trace ids (see ``TRACE_KEYS``) become top-level fields; other extras go
    under ``extra``. Secrets are redacted everywhere. A new file is opened
    when the UTC date changes, and expired files are pruned at that point.
    """

    def __init__(
        self,
        logs_dir: Path,
        retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    ):
        super().__init__()
        logs_dir.mkdir(parents=True, exist_ok=True)
        self._logs_dir = logs_dir
        self._retention_days = retention_days
        self._day: str | None = None
        self._stream: TextIO | None = None

    def _stream_for(self, day: str) -> TextIO:
        if self._stream is None or self._day != day:
            if self._stream is not None:
                self._stream.close()
            self._stream = (self._logs_dir / f"{day}.jsonl").open(
                "a", encoding="utf-8"
            )
            self._day = day
            prune_old_logs(self._logs_dir, self._retention_days)
        return self._stream

    def _build_entry(self, record: logging.LogRecord, now: datetime) -> dict[str, object]:
        entry: dict[str, object] = {
            "ts": now.isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "logger": record.name,
            "message": _redactor.redact(record.getMessage()),
        }

        extra = _record_extra(record)
        for key in TRACE_KEYS:
            if extra.get(key) is not None:
                entry[key] = str(extra.pop(key))
            else:
                extra.pop(key, None)

        if extra:
            redacted = _redactor.redact(json.dumps(extra, default=str))
            try:
                entry["extra"] = json.loads(redacted)
            except json.JSONDecodeError:
                entry["extra"] = {"_redacted_raw": redacted}

        if record.exc_info:
            formatter = self.formatter or logging.Formatter()
            entry["exception"] = _redactor.redact(
                formatter.formatException(record.exc_info)
            )
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            now = datetime.now(UTC)
            entry = self._build_entry(record, now)
            stream = self._stream_for(now.strftime("%Y-%m-%d"))
            stream.write(json.dumps(entry) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        super().close()


class ComponentFormatter(logging.Formatter):
    """Formatter exposing ``%(component)s`` for switchboard submodules."""

    def format(self, record: logging.LogRecord) -> str:
        record.component = _component(record)
        return super().format(record)


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("SWITCHBOARD_LOG_LEVEL", "INFO")).upper()
    if name not in LOG_LEVELS:
        name = "INFO"
    return logging.getLevelName(name)


def configure_logging(
    level: str | None = None,
    use_rich: bool = False,
    log_to_file: bool = False,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
) -> None:
    """Configure logging for Switchboard.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
            If None, uses SWITCHBOARD_LOG_LEVEL env var or INFO.
        use_rich: Use Rich handler for colorful console output.
        log_to_file: Also write logs to JSONL files under $SWITCHBOARD_HOME/logs.
        retention_days: Days of JSONL files to keep.
    """
    log_level = _resolve_level(level)

    if use_rich:
        from rich.logging import RichHandler

        console: logging.Handler = RichHandler(
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        console.setFormatter(ComponentFormatter("[%(component)s] %(message)s"))
    else:
        console = logging.StreamHandler()
        console.setFormatter(
            ComponentFormatter(
                "%(asctime)s %(levelname)-7s [%(component)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    handlers = [console]

    if log_to_file:
        from switchboard.config.paths import get_logs_path

        jsonl = JSONLHandler(get_logs_path(), retention_days=retention_days)
        jsonl.setLevel(log_level)
        handlers.append(jsonl)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
