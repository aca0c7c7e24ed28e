from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s runId=%(runId)s comp=%(component)s msg=%(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

LOG_LEVELS: dict[str, int] = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class RunContextFilter(logging.Filter):
    """Подставляет runId и component в записи, пришедшие без extra."""

    def __init__(self, runId: str, defaultComponent: str = "core"):
        super().__init__()
        self.runId = runId
        self.defaultComponent = defaultComponent

    def filter(self, record: logging.LogRecord) -> bool:
        record.runId = getattr(record, "runId", self.runId)
        record.component = getattr(record, "component", self.defaultComponent)
        return True


class StdStreamToLogger:
    """
    Назначение:
        Файлоподобный объект: каждая законченная строка stdout/stderr
        (включая подсказки typer.prompt) уходит в лог команды.
    """

    def __init__(self, logger: logging.Logger, level: int, runId: str, component: str):
        self.logger = logger
        self.level = level
        self.runId = runId
        self.component = component
        self._pending = ""

    def write(self, s: str) -> int:
        self._pending += s
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._emit(line)
        return len(s)

    def flush(self) -> None:
        self._emit(self._pending)
        self._pending = ""

    def _emit(self, line: str) -> None:
        if line.strip():
            logEvent(self.logger, self.level, self.runId, self.component, line.rstrip())


class TeeStream:
    """Пишет в исходный поток консоли и в StdStreamToLogger."""

    def __init__(self, primary, secondary):
        self.primary = primary
        self.secondary = secondary

    def write(self, s: str) -> int:
        written = self.primary.write(s)
        self.secondary.write(s)
        return written

    def flush(self) -> None:
        self.primary.flush()
        self.secondary.flush()

    def isatty(self) -> bool:
        # typer.prompt/confirm проверяют TTY у sys.stdout
        return bool(getattr(self.primary, "isatty", lambda: False)())


def mapLogLevel(levelName: str) -> int:
    """ERROR|WARN|INFO|DEBUG -> уровень logging; иначе ValueError."""
    level = LOG_LEVELS.get((levelName or "").strip().upper())
    if level is None:
        raise ValueError(f"Unsupported log level: {levelName}")
    return level


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Отдельный логгер hardmatch.<команда>.<runId> с файлом <команда>_<runId>.log.
        В корневой логгер записи не уходят.

    Выход:
        (logger, путь к файлу лога)
    """
    level = mapLogLevel(logLevel)
    Path(logDir).mkdir(parents=True, exist_ok=True)
    logFilePath = str(Path(logDir) / f"{commandName}_{runId}.log")

    logger = logging.getLogger(f"hardmatch.{commandName}.{runId}")
    closeCommandLogger(logger)
    logger.propagate = False
    logger.setLevel(level)

    fileHandler = logging.FileHandler(logFilePath, encoding="utf-8")
    fileHandler.setLevel(level)
    fileHandler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    fileHandler.addFilter(RunContextFilter(runId=runId))
    logger.addHandler(fileHandler)
    return logger, logFilePath


def closeCommandLogger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def logEvent(logger: logging.Logger, level: int, runId: str, component: str, message: str) -> None:
    """Единственная точка записи событий: runId и component попадают в каждую строку."""
    logger.log(level, message, extra={"runId": runId, "component": component})
