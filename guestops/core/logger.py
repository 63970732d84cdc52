# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/core/logger.py
"""
Logging for guestops.

One named logger (``guestops``) with an extra TRACE level below DEBUG, used
for the per-call dump of guest operation arguments. Console output is a
short emoji line, colored on a TTY; ``--json-logs`` switches every handler to
NDJSON. Key/value context (``vm=web01 op=upload``) rides along in
``record.ctx``, set through ``Log.bind`` or ``extra={"ctx": {...}}``.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from termcolor import colored as _colored

LOGGER_NAME = "guestops"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def _logger_trace(self: logging.Logger, msg: str, *args, **kwargs) -> None:
    if self.isEnabledFor(TRACE):
        self._log(TRACE, msg, args, **kwargs)


if not hasattr(logging.Logger, "trace"):
    logging.Logger.trace = _logger_trace  # type: ignore[attr-defined]

# levelname -> (emoji, termcolor color)
_LEVELS: Dict[str, Tuple[str, str]] = {
    "TRACE": ("🧬", "cyan"),
    "DEBUG": ("🔍", "blue"),
    "INFO": ("✅", "green"),
    "WARNING": ("⚠️", "yellow"),
    "ERROR": ("💥", "red"),
    "CRITICAL": ("🧨", "red"),
}


def get_logger(logger: Optional[logging.Logger] = None) -> logging.Logger:
    """Return ``logger`` or the project logger."""
    return logger if logger is not None else logging.getLogger(LOGGER_NAME)


def is_tty(stream=None) -> bool:
    try:
        return bool((stream or sys.stdout).isatty())
    except (AttributeError, ValueError):
        return False


def c(
    text: str,
    color: Optional[str] = None,
    attrs: Optional[List[str]] = None,
    *,
    enable: bool = True,
) -> str:
    """Colorize text when enabled."""
    if not enable or not color:
        return text
    return _colored(text, color=color, attrs=attrs or [])


Ctx = Mapping[str, Any]


def _flat(v: Any, limit: int = 240) -> str:
    s = str(v).replace("\r", "\\r").replace("\n", "\\n")
    return s if len(s) <= limit else s[: limit - 1] + "…"


def _ctx_suffix(ctx: Optional[Ctx]) -> str:
    if not ctx:
        return ""
    return " " + " ".join(f"{k}={_flat(ctx[k])}" for k in sorted(ctx, key=str))


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Logger carrying fixed key/value context, e.g. the VM a command targets.

        log = Log.bind(logger, vm="web01")
        log.bind(op="upload").info("Starting")
    """

    def __init__(self, logger: logging.Logger, ctx: Optional[Ctx] = None):
        super().__init__(logger, extra={"ctx": dict(ctx or {})})

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["ctx"] = {**self.extra["ctx"], **(extra.get("ctx") or {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def trace(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(TRACE, msg, *args, **kwargs)

    def bind(self, **ctx: Any) -> "ContextLoggerAdapter":
        return ContextLoggerAdapter(self.logger, {**self.extra["ctx"], **ctx})


@dataclass(frozen=True)
class LogStyle:
    color: bool = True
    show_ms: bool = False
    show_src: bool = False  # module:line
    show_pid: bool = False
    show_logger: bool = False
    utc: bool = False


class EmojiFormatter(logging.Formatter):
    """``12:00:01 ✅ INFO     message key=value`` lines."""

    def __init__(self, style: LogStyle):
        super().__init__()
        self._style = style

    def _stamp(self, created: float) -> str:
        tz = _dt.timezone.utc if self._style.utc else None
        fmt = "%H:%M:%S.%f" if self._style.show_ms else "%H:%M:%S"
        s = _dt.datetime.fromtimestamp(created, tz=tz).strftime(fmt)
        return s[:-3] if self._style.show_ms else s

    def _where(self, record: logging.LogRecord) -> str:
        bits = []
        if self._style.show_pid:
            bits.append(f"pid={record.process}")
        if self._style.show_logger:
            bits.append(record.name)
        if self._style.show_src:
            bits.append(f"{record.module}:{record.lineno}")
        return f" [{' '.join(bits)}]" if bits else ""

    def format(self, record: logging.LogRecord) -> str:
        emoji, color = _LEVELS.get(record.levelname, ("•", ""))
        colored = bool(self._style.color and is_tty(sys.stderr))
        msg = record.getMessage()
        if record.levelno >= logging.WARNING:
            msg = c(msg, color, ["bold"], enable=colored)
        level = c(f"{record.levelname:<8}", color, enable=colored)

        line = f"{self._stamp(record.created)} {emoji} {level}{self._where(record)} {msg}"
        line += _ctx_suffix(getattr(record, "ctx", None))
        if record.exc_info:
            tb = "\n".join("  " + ln for ln in self.formatException(record.exc_info).splitlines())
            line += "\n" + c(tb, "red", enable=colored)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, *, utc: bool = True):
        super().__init__()
        self._tz = _dt.timezone.utc if utc else None

    def format(self, record: logging.LogRecord) -> str:
        obj: Dict[str, Any] = {
            "ts": _dt.datetime.fromtimestamp(record.created, tz=self._tz).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": record.process,
            "module": record.module,
            "lineno": record.lineno,
        }
        ctx = getattr(record, "ctx", None)
        if ctx:
            obj["ctx"] = {str(k): _flat(v) for k, v in ctx.items()}
        if record.exc_info:
            obj["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else "Exception"
            obj["traceback"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


def _ctx_extra(ctx: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return {"ctx": ctx} if ctx else None


class Log:
    @staticmethod
    def _level_from_flags(verbose: int, quiet: int) -> int:
        """
        Default INFO; -q WARNING, -qq ERROR; -vv DEBUG, -vvv TRACE.
        Quiet wins over verbose.
        """
        if quiet:
            return logging.ERROR if quiet >= 2 else logging.WARNING
        if verbose >= 3:
            return TRACE
        return logging.DEBUG if verbose >= 2 else logging.INFO

    @staticmethod
    def bind(logger: logging.Logger, **ctx: Any) -> ContextLoggerAdapter:
        return ContextLoggerAdapter(logger, ctx)

    @staticmethod
    def step(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        logger.info("➡️  %s", msg, extra=_ctx_extra(ctx))

    @staticmethod
    def ok(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        logger.info("✅ %s", msg, extra=_ctx_extra(ctx))

    @staticmethod
    def warn(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        logger.warning("⚠️  %s", msg, extra=_ctx_extra(ctx))

    @staticmethod
    def fail(logger: logging.Logger, msg: str, **ctx: Any) -> None:
        logger.error("💥 %s", msg, extra=_ctx_extra(ctx))

    @staticmethod
    def setup(
        verbose: int = 0,
        log_file: Optional[str] = None,
        *,
        quiet: int = 0,
        color: bool = True,
        utc: bool = False,
        json_logs: bool = False,
        logger_name: str = LOGGER_NAME,
    ) -> logging.Logger:
        """
        (Re)configure ``logger_name``: a stderr handler, plus a file handler
        when ``log_file`` is given. The file always gets the detailed,
        uncolored layout (or NDJSON with ``json_logs``).
        """
        logger = logging.getLogger(logger_name)
        logger.propagate = False
        level = Log._level_from_flags(verbose, quiet)
        logger.setLevel(level)

        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()

        def attach(handler: logging.Handler, style: LogStyle) -> None:
            handler.setLevel(level)
            handler.setFormatter(JsonFormatter(utc=utc) if json_logs else EmojiFormatter(style))
            logger.addHandler(handler)

        attach(
            logging.StreamHandler(stream=sys.stderr),
            LogStyle(color=color, show_ms=verbose >= 3, show_src=verbose >= 3, show_pid=verbose >= 2, utc=utc),
        )
        if log_file:
            fp = Path(log_file).expanduser().resolve()
            fp.parent.mkdir(parents=True, exist_ok=True)
            attach(
                logging.FileHandler(fp, encoding="utf-8"),
                LogStyle(color=False, show_ms=True, show_src=True, show_pid=True, show_logger=True, utc=utc),
            )

        logger.debug("Logger initialized (level=%s, pid=%s)", logging.getLevelName(level), os.getpid())
        logger.trace("TRACE enabled (verbose >= 3)")  # type: ignore[attr-defined]
        return logger
