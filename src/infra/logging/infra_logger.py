"""
Purpose
-------
Structured, environment-configurable logging for the listing topic-model
pipeline. Every stage (loading, filtering, vocabulary building, corpus
assembly, topic-count search, effect estimation) reports through one
`InfraLogger` so that a whole run can be correlated by `run_id`.

Key behaviors
-------------
- Emits one structured entry per call (`emit`) with a UTC timestamp.
- Drops entries below the configured threshold (DEBUG < INFO < WARNING < ERROR).
- Serializes entries as JSON (default) or as a single human-readable line.
- Falls back to defaults on invalid environment variables and reports each
  fallback as a WARNING entry.
- Never interrupts the pipeline: unserializable context is stringified.

Conventions
-----------
- Default level is INFO, default format is JSON, default destination is STDERR.
- File destinations are opened in append mode with UTF-8 encoding.
- Worker processes of the topic-count sweep receive a `child` logger of the
  caller, so their entries keep the caller's `run_id` and level.

Downstream usage
----------------
Call `initialize_logger` once per process and pass the returned logger
explicitly into pipeline functions.
"""

import datetime as dt
import json
import os
import sys
from typing import TypedDict

LOG_LEVELS: set[str] = {"DEBUG", "INFO", "WARNING", "ERROR"}
LEVEL_MAPPING: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}
LOG_FORMATS: set[str] = {"json", "text"}


class LogEntry(TypedDict):
    """
    Purpose
    -------
    Shape of a single serialized log entry.

    Fields
    ------
    timestamp : str
        UTC ISO-8601 timestamp with a "Z" suffix.
    level : str
        Severity ("DEBUG", "INFO", "WARNING", "ERROR").
    run_id : str
        Identifier shared by every entry of one pipeline run.
    component : str
        Pipeline component that produced the entry.
    event : str
        Snake_case event name.
    message : str
        Free-text message.
    run_meta : dict
        Run-scoped metadata fixed at logger creation (e.g. input path).
    context : dict
        Event-specific payload (counts, topic counts, ids).
    """

    timestamp: str
    level: str
    run_id: str
    component: str
    event: str
    message: str
    run_meta: dict
    context: dict


class InfraLogger:
    """
    Purpose
    -------
    Level-thresholded structured logger shared by all pipeline stages.

    Parameters
    ----------
    component_name : str
        Name of the pipeline component using the logger.
    run_id : str
        Identifier correlating entries of one run.
    run_meta : dict
        Run-scoped metadata attached to every entry.
    log_level : str, default="INFO"
        Minimum level that is written.
    log_format : str, default="json"
        "json" or "text".
    log_dest : str, default="stderr"
        "stderr" or a file path.

    Notes
    -----
    - `child` derives a logger for a sub-component that keeps the run id,
      metadata, and output settings.
    """

    def __init__(
        self,
        component_name: str,
        run_id: str,
        run_meta: dict,
        log_level: str = "INFO",
        log_format: str = "json",
        log_dest: str = "stderr",
    ) -> None:
        self.component_name = component_name
        self.run_id = run_id
        self.run_meta = run_meta
        self.level = log_level
        self.format = log_format
        self.dest = log_dest

    def emit(
        self, event: str, level: str = "INFO", msg: str | None = None, context: dict | None = None
    ) -> None:
        """
        Write one entry if `level` passes the threshold.

        Parameters
        ----------
        event : str
            Snake_case event name.
        level : str, default="INFO"
            Severity of the entry.
        msg : str, optional
            Free-text message; empty when omitted.
        context : dict, optional
            Event payload; empty when omitted.

        Returns
        -------
        None
        """

        if LEVEL_MAPPING[level] < LEVEL_MAPPING[self.level]:
            return
        entry: LogEntry = {
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "run_id": self.run_id,
            "component": self.component_name,
            "event": event,
            "message": msg if msg is not None else "",
            "run_meta": self.run_meta,
            "context": context if context is not None else {},
        }
        self.write_entry(self.format_entry(entry))

    def debug(self, event: str, msg: str | None = None, context: dict | None = None) -> None:
        """Emit a DEBUG entry."""

        self.emit(event=event, level="DEBUG", msg=msg, context=context)

    def info(self, event: str, msg: str | None = None, context: dict | None = None) -> None:
        """Emit an INFO entry."""

        self.emit(event=event, level="INFO", msg=msg, context=context)

    def warning(self, event: str, msg: str | None = None, context: dict | None = None) -> None:
        """Emit a WARNING entry."""

        self.emit(event=event, level="WARNING", msg=msg, context=context)

    def error(self, event: str, msg: str | None = None, context: dict | None = None) -> None:
        """Emit an ERROR entry."""

        self.emit(event=event, level="ERROR", msg=msg, context=context)

    def child(self, component_name: str) -> "InfraLogger":
        """
        Derive a logger for a sub-component of the same run.

        Parameters
        ----------
        component_name : str
            Name written into the `component` field of the derived logger.

        Returns
        -------
        InfraLogger
            New logger sharing run id, metadata, level, format, and destination.
        """

        return InfraLogger(
            component_name=component_name,
            run_id=self.run_id,
            run_meta=self.run_meta,
            log_level=self.level,
            log_format=self.format,
            log_dest=self.dest,
        )

    def format_entry(self, entry: LogEntry) -> str:
        """
        Serialize an entry in the configured format.

        Parameters
        ----------
        entry : LogEntry
            Entry to serialize.

        Returns
        -------
        str
            JSON document, or a `timestamp [LEVEL] component event - message k=v`
            text line.

        Notes
        -----
        - JSON serialization retries with `default=str` for values such as
          numpy scalars or dates in the context.
        """

        if self.format == "json":
            try:
                return json.dumps(entry, ensure_ascii=False)
            except (TypeError, ValueError):
                return json.dumps(entry, ensure_ascii=False, default=str)
        context_str = " ".join(f"{k}={v}" for k, v in entry["context"].items())
        return (
            f"{entry['timestamp']} [{entry['level']}] "
            f"{entry['component']} {entry['event']} - {entry['message']} "
            f"{context_str}"
        )

    def write_entry(self, formatted_entry: str) -> None:
        """
        Write a serialized entry to STDERR or append it to the destination file.

        Parameters
        ----------
        formatted_entry : str
            Output of `format_entry`.

        Returns
        -------
        None
        """

        if self.dest == "stderr":
            print(formatted_entry, file=sys.stderr)
        else:
            with open(self.dest, "a", encoding="utf-8") as f:
                f.write(formatted_entry + "\n")


def initialize_logger(
    component_name: str,
    level: str | None = None,
    run_id: str | None = None,
    run_meta: dict | None = None,
) -> InfraLogger:
    """
    Build an `InfraLogger` from the environment.

    Parameters
    ----------
    component_name : str
        Component label for the logger.
    level : str, optional
        Explicit level overriding `LOG_LEVEL`; ignored when not a known level.
    run_id : str, optional
        Run identifier; generated from the component name when omitted.
    run_meta : dict, optional
        Run-scoped metadata.

    Returns
    -------
    InfraLogger
        Configured logger. Fallbacks applied to invalid environment values are
        reported through the logger itself.

    Notes
    -----
    - Honors LOG_LEVEL, LOG_FORMAT, and LOG_DEST.
    """

    fall_backs = {
        "level": False,
        "log_format": False,
        "log_dest": False,
    }
    env_level, log_format, log_dest = extract_env_vars(fall_backs)
    if level is not None and level.upper() in LOG_LEVELS:
        env_level = level.upper()
        fall_backs["level"] = False

    logger = InfraLogger(
        component_name=component_name,
        run_id=run_id if run_id is not None else generate_run_id(component_name),
        run_meta=run_meta if run_meta is not None else {},
        log_level=env_level,
        log_format=log_format,
        log_dest=log_dest,
    )
    handle_fallbacks(logger, fall_backs)
    return logger


def extract_env_vars(fall_backs: dict[str, bool]) -> tuple[str, str, str]:
    """
    Read LOG_LEVEL, LOG_FORMAT, and LOG_DEST, replacing invalid values.

    Parameters
    ----------
    fall_backs : dict[str, bool]
        Flags set to True for every variable that had to be replaced.

    Returns
    -------
    tuple[str, str, str]
        (level, format, destination), normalized to upper/lower case.

    Notes
    -----
    - A file destination is probed by opening it in append mode; an OSError
      falls back to "stderr".
    """

    level: str = os.environ.get("LOG_LEVEL", "INFO")
    log_format: str = os.environ.get("LOG_FORMAT", "json")
    log_dest: str = os.environ.get("LOG_DEST", "stderr")

    if level.upper() not in LOG_LEVELS:
        fall_backs["level"] = True
        level = "INFO"

    if log_format.lower() not in LOG_FORMATS:
        fall_backs["log_format"] = True
        log_format = "json"

    if log_dest.lower() != "stderr":
        try:
            with open(log_dest, "a", encoding="utf-8"):
                pass
        except OSError:
            fall_backs["log_dest"] = True
            log_dest = "stderr"

    return level.upper(), log_format.lower(), log_dest


def generate_run_id(component_name: str) -> str:
    """
    Build a run identifier of the form `<component>--<UTC timestamp>--<pid>`.
    """

    return (
        component_name
        + "--"
        + dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        + "--"
        + str(os.getpid())
    )


FALLBACK_EVENTS: dict[str, tuple[str, str, str]] = {
    "level": ("FALLBACK_LOG_LEVEL", "LOG_LEVEL", "Invalid LOG_LEVEL env var; defaulting to INFO"),
    "log_format": (
        "FALLBACK_LOG_FORMAT",
        "LOG_FORMAT",
        "Invalid LOG_FORMAT env var; defaulting to json",
    ),
    "log_dest": (
        "FALLBACK_LOG_DEST",
        "LOG_DEST",
        "Invalid LOG_DEST env var; defaulting to stderr",
    ),
}


def handle_fallbacks(logger: InfraLogger, fall_backs: dict[str, bool]) -> None:
    """
    Emit one WARNING per environment variable that was replaced by a default.

    Parameters
    ----------
    logger : InfraLogger
        Logger used to report the fallbacks.
    fall_backs : dict[str, bool]
        Flags produced by `extract_env_vars`.

    Returns
    -------
    None
    """

    for key, triggered in fall_backs.items():
        if not triggered:
            continue
        event, env_var, message = FALLBACK_EVENTS[key]
        logger.emit(
            event=event,
            level="WARNING",
            msg=message,
            context={"invalid_value": os.environ.get(env_var, None)},
        )
