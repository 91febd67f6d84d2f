"""SQL builders for idempotent sync writes.

Upserts key on ``id`` and only touch the row when the write would change it,
so replaying a push batch leaves the table exactly as the first run did.
"""

from __future__ import annotations


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
    extra_updates: list[str] | None = None,
    guards: list[str] | None = None,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE ... WHERE query.

    Args:
        table:            Target table name.
        columns:          All columns to insert, in parameter order.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns copied from EXCLUDED on conflict
                          (defaults to non-key columns).
        extra_updates:    Extra columns set from EXCLUDED on conflict, but not
                          compared when deciding whether the row changed
                          (e.g. ``last_modified``).
        guards:           Extra conditions that must all hold for the update
                          to happen.

    Returns:
        Parameterized SQL string.  The status tag ends in ``1`` when a row
        was inserted or updated and ``0`` when the update was skipped.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(
            f"{col} = EXCLUDED.{col}" for col in update_columns + (extra_updates or [])
        )
        existing = ", ".join(f"{table}.{col}" for col in update_columns)
        incoming = ", ".join(f"EXCLUDED.{col}" for col in update_columns)
        conditions = [f"({existing}) IS DISTINCT FROM ({incoming})", *(guards or [])]
        do_clause = f"DO UPDATE SET {update_set} WHERE " + " AND ".join(conditions)
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )


def build_soft_delete_query(table: str) -> str:
    """Build the soft-delete statement.  ``$1`` is the id, ``$2`` the timestamp.

    Only live rows are touched, so ``deleted_at`` is set exactly once.
    """
    return (
        f"UPDATE {table} "
        f"SET is_deleted = true, deleted_at = $2, last_modified = $2 "
        f"WHERE id = $1 AND is_deleted = false"
    )


def build_delta_query(table: str, where: str, columns: str = "*") -> str:
    return f"SELECT {columns} FROM {table} WHERE {where}"
