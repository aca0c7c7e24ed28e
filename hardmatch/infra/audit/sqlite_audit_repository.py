from __future__ import annotations

from hardmatch.domain.models import (
    LinkStage,
    OutcomeKind,
    OutcomeRecord,
    SourceDescriptor,
    TargetDescriptor,
)
from hardmatch.domain.ports.audit import AuditSinkProtocol
from hardmatch.infra.audit.sqlite_engine import SqliteEngine


class SqliteAuditRepository(AuditSinkProtocol):
    """
    Назначение/ответственность:
        Журнал результатов связывания в SQLite (только INSERT).
    """

    def __init__(self, engine: SqliteEngine, run_id: str | None = None):
        self.engine = engine
        self.run_id = run_id

    def record(self, record: OutcomeRecord) -> None:
        with self.engine.transaction():
            self.engine.execute(
                """
                INSERT INTO link_audit(
                    run_id,
                    recorded_at,
                    source_display_name,
                    source_login_name,
                    source_principal_name,
                    target_principal_name,
                    target_cloud_id,
                    anchor_text,
                    kind,
                    stage,
                    error_code,
                    detail
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    self.run_id,
                    record.timestamp,
                    record.source.display_name,
                    record.source.login_name,
                    record.source.principal_name,
                    record.target.principal_name,
                    record.target.cloud_id,
                    record.anchor_text,
                    record.kind.value,
                    record.stage.value if record.stage else None,
                    record.error_code,
                    record.detail,
                ),
            )

    def list_recent(self, limit: int = 50) -> list[OutcomeRecord]:
        rows = self.engine.fetchall(
            """
            SELECT recorded_at, source_display_name, source_login_name, source_principal_name,
                   target_principal_name, target_cloud_id, anchor_text, kind, stage, error_code, detail
            FROM link_audit
            ORDER BY audit_id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [_row_to_record(row) for row in rows]

    def list_for_cloud_id(self, cloud_id: str) -> list[OutcomeRecord]:
        rows = self.engine.fetchall(
            """
            SELECT recorded_at, source_display_name, source_login_name, source_principal_name,
                   target_principal_name, target_cloud_id, anchor_text, kind, stage, error_code, detail
            FROM link_audit
            WHERE target_cloud_id = ?
            ORDER BY audit_id
            """,
            (cloud_id,),
        )
        return [_row_to_record(row) for row in rows]


def _row_to_record(row) -> OutcomeRecord:
    return OutcomeRecord(
        timestamp=row["recorded_at"],
        source=SourceDescriptor(
            display_name=row["source_display_name"] or "",
            login_name=row["source_login_name"] or "",
            principal_name=row["source_principal_name"] or "",
        ),
        target=TargetDescriptor(
            principal_name=row["target_principal_name"] or "",
            cloud_id=row["target_cloud_id"] or "",
        ),
        anchor_text=row["anchor_text"],
        kind=OutcomeKind(row["kind"]),
        detail=row["detail"],
        stage=LinkStage(row["stage"]) if row["stage"] else None,
        error_code=row["error_code"],
    )
