# evaluador/infra/migrations.py
"""
Migraciones de esquema con PRAGMA user_version.

V1: tabla clave/valor `estado` (valores JSON)
V2: columna `actualizado` con la marca de tiempo de la última escritura
"""

from __future__ import annotations

from typing import Callable, List, Tuple

from .db import connect


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Agrega la columna si la tabla aún no la tiene."""
    existentes = {r["name"] for r in conn.execute(f"PRAGMA table_info({table});")}
    if column not in existentes:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _v1_estado(conn) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS estado (
            clave TEXT PRIMARY KEY,
            valor TEXT
        );
        """
    )


def _v2_actualizado(conn) -> None:
    _ensure_column(conn, "estado", "actualizado", "actualizado TEXT")


# (versión destino, paso); en orden creciente
MIGRATIONS: List[Tuple[int, Callable]] = [
    (1, _v1_estado),
    (2, _v2_actualizado),
]

SCHEMA_VERSION = MIGRATIONS[-1][0]


def schema_version(db_path: str) -> int:
    with connect(db_path) as conn:
        return conn.execute("PRAGMA user_version;").fetchone()[0] or 0


def apply_migrations(db_path: str) -> int:
    """Aplica los pasos pendientes y devuelve la versión final."""
    with connect(db_path) as conn:
        actual = conn.execute("PRAGMA user_version;").fetchone()[0] or 0
        for version, paso in MIGRATIONS:
            if actual >= version:
                continue
            paso(conn)
            conn.execute(f"PRAGMA user_version = {version};")
            actual = version
        return actual
