import sqlite3
from pathlib import Path

from evaluador.infra.migrations import SCHEMA_VERSION, apply_migrations, schema_version
from evaluador.infra.repositories import EstadoRepo


def test_apply_migrations_is_idempotent(tmp_path: Path):
    db_path = str(tmp_path / "sub" / "estado.sqlite")
    assert apply_migrations(db_path) == SCHEMA_VERSION
    assert apply_migrations(db_path) == SCHEMA_VERSION
    assert schema_version(db_path) == SCHEMA_VERSION


def test_upgrade_from_v1_keeps_values(tmp_path: Path):
    db_path = str(tmp_path / "viejo.sqlite")
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE estado (clave TEXT PRIMARY KEY, valor TEXT)")
    conn.execute("INSERT INTO estado VALUES ('customerName', '\"Cliente Uno\"')")
    conn.execute("PRAGMA user_version = 1")
    conn.commit()
    conn.close()

    apply_migrations(db_path)
    repo = EstadoRepo(db_path)
    assert repo.get_json("customerName") == "Cliente Uno"
    repo.set_json("notes", "ok")
    [fila] = repo.listar("notes")
    assert fila["actualizado"]


def test_get_float_ignores_non_finite_values(tmp_path: Path):
    db_path = str(tmp_path / "estado.sqlite")
    apply_migrations(db_path)
    repo = EstadoRepo(db_path)
    repo.set_json("months", float("inf"))
    repo.set_json("commission", "abc")
    assert repo.get_float("months", 12) == 12
    assert repo.get_float("commission", 0.0) == 0.0
