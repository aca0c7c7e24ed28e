from __future__ import annotations

from hardmatch.infra.audit.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 1


def ensure_audit_schema(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать таблицу link_audit, версия схемы хранится в PRAGMA user_version.
    """
    current_version = int(engine.fetchone("PRAGMA user_version")[0])
    if current_version >= SCHEMA_VERSION:
        return current_version

    with engine.transaction():
        engine.execute(
            """
            CREATE TABLE IF NOT EXISTS link_audit (
                audit_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT,
                recorded_at TEXT NOT NULL,
                source_display_name TEXT,
                source_login_name TEXT,
                source_principal_name TEXT,
                target_principal_name TEXT,
                target_cloud_id TEXT,
                anchor_text TEXT,
                kind TEXT NOT NULL,
                stage TEXT,
                error_code TEXT,
                detail TEXT NOT NULL
            )
            """
        )
        engine.execute("CREATE INDEX IF NOT EXISTS idx_link_audit_cloud ON link_audit(target_cloud_id)")
        engine.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
    return SCHEMA_VERSION
