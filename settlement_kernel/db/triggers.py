"""
Module: settlement_kernel.db.triggers
Responsibility: Loading, installing, and verifying the PostgreSQL triggers
    that back the ORM listeners in db/immutability.py (layer 2 of 2).
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (PostgreSQL only):
    - financial_ledger rows: no UPDATE, no DELETE.
    - orders.commission_paid_amount stays within [0, commission_amount] and
      never decreases.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaced by SQLAlchemy as
      IntegrityError or InternalError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - Other dialects are skipped: SQLite test databases rely on layer 1.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from settlement_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

# Installed in this order
TRIGGER_FILES = [
    "01_financial_ledger.sql",
    "02_commission_accumulator.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_financial_ledger_immutability_update",
    "trg_financial_ledger_immutability_delete",
    "trg_order_commission_paid_bounds",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Concatenate all trigger files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def _is_postgres(engine: Engine) -> bool:
    return engine.dialect.name == "postgresql"


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the database-level triggers.

    Preconditions: tables exist (call after create_all).
    Postconditions: all ALL_TRIGGER_NAMES are installed (CREATE OR REPLACE,
        so repeated calls are harmless).  No-op on non-PostgreSQL engines.
    """
    if not _is_postgres(engine):
        logger.debug("triggers_skipped", extra={"dialect": engine.dialect.name})
        return

    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()
    logger.info("triggers_installed", extra={"count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the database-level triggers.

    WARNING: Only for teardown and data repair migrations.  Re-install
    immediately afterwards.
    """
    if not _is_postgres(engine):
        return

    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()
    logger.warning("triggers_uninstalled", extra={"count": len(ALL_TRIGGER_NAMES)})


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the kernel triggers currently present in pg_trigger."""
    if not _is_postgres(engine):
        return []

    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
