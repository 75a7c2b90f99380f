"""
Automatic schema migration for SQLite databases.
Adds columns the models define but an older database lacks, and converts
the legacy custom-deadlines flag into deadline_mode.
"""
import sqlite3
import logging
from typing import Optional
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from morningproof.database import engine as default_engine, Base
from morningproof import models  # noqa: F401  registers tables on Base
from morningproof.constants import DEADLINE_MODE_SAME_EVERY_DAY, DEADLINE_MODE_WEEKDAY_WEEKEND

logger = logging.getLogger("morningproof.migrations")

LEGACY_DEADLINE_COLUMN = "custom_deadlines_enabled"


def get_table_columns(conn, table_name: str) -> set:
    """Column names currently present in a table"""
    cursor = conn.cursor()
    cursor.execute(f"PRAGMA table_info({table_name})")
    # row: (cid, name, type, notnull, dflt_value, pk)
    return {row[1] for row in cursor.fetchall()}


def sqlite_type(sa_type) -> str:
    name = str(sa_type).upper()
    if "INT" in name or "BOOLEAN" in name:
        return "INTEGER"
    if "FLOAT" in name or "NUMERIC" in name or "REAL" in name:
        return "REAL"
    return "TEXT"  # strings, dates and datetimes are stored as text


def sql_default(column) -> Optional[str]:
    """Literal SQL default for a column, or None when it has no constant default"""
    if column.default is None or not hasattr(column.default, "arg"):
        return None
    value = column.default.arg
    if callable(value):
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return None


def column_ddl(table_name: str, column) -> str:
    ddl = f"ALTER TABLE {table_name} ADD COLUMN {column.name} {sqlite_type(column.type)}"
    default = sql_default(column)
    if default is not None:
        ddl += f" DEFAULT {default}"
        # SQLite only accepts NOT NULL on an added column when it has a default
        if not column.nullable:
            ddl += " NOT NULL"
    return ddl


def add_missing_columns(conn, existing_tables) -> int:
    added = 0
    cursor = conn.cursor()
    for table_name, table in Base.metadata.tables.items():
        if table_name not in existing_tables:
            logger.warning(f"Table '{table_name}' doesn't exist. Run Base.metadata.create_all() first.")
            continue

        present = get_table_columns(conn, table_name)
        for column in table.columns:
            if column.name in present:
                continue
            ddl = column_ddl(table_name, column)
            logger.debug(f"SQL: {ddl}")
            try:
                cursor.execute(ddl)
                added += 1
                logger.info(f"Added column {table_name}.{column.name}")
            except sqlite3.Error as e:
                logger.error(f"Failed to add column {table_name}.{column.name}: {e}")
    return added


def migrate_legacy_deadlines(conn) -> int:
    """
    Move the old boolean weekday/weekend switch into deadline_mode.

    Rows with the flag set and no explicit mode become mode 1; the flag is
    then cleared so the conversion happens once.
    """
    if LEGACY_DEADLINE_COLUMN not in get_table_columns(conn, "settings"):
        return 0
    cursor = conn.cursor()
    cursor.execute(
        f"UPDATE settings SET deadline_mode = ?, {LEGACY_DEADLINE_COLUMN} = 0 "
        f"WHERE {LEGACY_DEADLINE_COLUMN} = 1 "
        f"AND (deadline_mode IS NULL OR deadline_mode = ?)",
        (DEADLINE_MODE_WEEKDAY_WEEKEND, DEADLINE_MODE_SAME_EVERY_DAY),
    )
    converted = cursor.rowcount or 0
    if converted:
        logger.info(f"Converted {converted} settings row(s) from custom deadlines to weekday/weekend mode")
    return converted


def auto_migrate(bind: Optional[Engine] = None) -> int:
    """
    Bring an existing SQLite database up to the current models.

    Returns:
        Number of schema or data changes applied
    """
    bind = bind or default_engine
    if bind.dialect.name != "sqlite":
        logger.info(f"Skipping auto-migration for {bind.dialect.name}")
        return 0

    logger.info("Starting automatic schema migration...")
    existing_tables = inspect(bind).get_table_names()
    conn = bind.raw_connection()
    try:
        changes = add_missing_columns(conn, existing_tables)
        if "settings" in existing_tables:
            changes += migrate_legacy_deadlines(conn)
        conn.commit()
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()

    if changes:
        logger.info(f"Migration completed: {changes} change(s) applied")
    else:
        logger.info("Schema is up to date - no migrations needed")
    return changes


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    auto_migrate()
