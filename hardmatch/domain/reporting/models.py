from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ReportMeta:
    """
    Назначение:
        Универсальные метаданные запуска команды.
    """

    run_id: str
    command: str
    started_at: str
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False
    graph_base_url: str | None = None
    onprem_source: str | None = None
    settle_seconds: float | None = None


@dataclass
class ReportSummary:
    """
    Назначение:
        Счётчики результатов связывания.
    """

    attempts_total: int = 0
    success: int = 0
    skipped: int = 0
    errors: int = 0
    info: int = 0
    error_codes: dict[str, int] = field(default_factory=dict)


@dataclass
class ReportItem:
    """
    Назначение:
        Единица отчёта: один OutcomeRecord.
    """

    status: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReportEnvelope:
    """
    Назначение:
        Корневой объект отчёта.
    """

    status: str
    meta: ReportMeta
    summary: ReportSummary
    items: list[ReportItem]
    context: dict[str, Any] = field(default_factory=dict)
