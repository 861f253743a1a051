from __future__ import annotations

import sys
from pathlib import Path

from sqlalchemy import create_engine, text

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from fuel_balance.config import settings  # noqa: E402
from fuel_balance.logging_utils import get_logger  # noqa: E402

LOGGER = get_logger("run_migrations")


def split_sql_statements(sql: str) -> list[str]:
    statements = []
    current: list[str] = []
    for line in sql.splitlines(keepends=True):
        if line.strip().startswith("--"):
            continue
        current.append(line)
        if line.strip().endswith(";"):
            statements.append("".join(current).strip())
            current = []
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return [s for s in statements if s]


def main() -> None:
    root = Path(__file__).resolve().parents[2]
    migrations_dir = root / "db" / "migrations"
    engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)

    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        LOGGER.info("No migration files found in %s", migrations_dir)
        return

    with engine.begin() as conn:
        conn.execute(
            text(
                """
                create table if not exists schema_migrations (
                  filename text primary key,
                  applied_at timestamptz not null default now()
                )
                """
            )
        )
        applied = {row[0] for row in conn.execute(text("select filename from schema_migrations")).fetchall()}

        for file in migration_files:
            if file.name in applied:
                continue
            for stmt in split_sql_statements(file.read_text(encoding="utf-8")):
                conn.execute(text(stmt))
            conn.execute(
                text("insert into schema_migrations (filename) values (:filename)"),
                {"filename": file.name},
            )
            LOGGER.info("Applied %s", file.name)

    LOGGER.info("Migration run finished")


if __name__ == "__main__":
    main()
