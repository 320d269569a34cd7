# evaluador/infra/repositories.py
"""
Repositorio del estado de sesión (clave -> JSON).

Las claves replican las del almacenamiento local de la aplicación:
catálogo, líneas de la propuesta, parámetros, datos del cliente y las
URLs y parámetros del módulo de comodatos.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import connect

# Claves conocidas
K_CATALOG = "catalog"
K_SALES = "sales"
K_COMODATO = "comodato"
K_COMMISSION = "commission"
K_MONTHS = "months"
K_USE_LIST_AS_COST = "useListAsCost"
K_COMMISSION_ON_NET = "commissionOnNet"
K_VIABILITY = "viabilityThreshold"
K_CUSTOMER = "customerName"
K_CLIENT_RUT = "client.rut"
K_CLIENT_CITY = "client.city"
K_CLIENT_EXEC = "client.exec"
K_NOTES = "notes"
K_DOC_NUMBER = "doc.number"

K_COM_VENTAS_URL = "comodatos.ventasUrl"
K_COM_COMODATOS_URL = "comodatos.comodatosUrl"
K_COM_CATALOG_URL = "comodatos.catalogUrl"
K_COM_REL_MAX = "comodatos.relMax"
K_COM_CONTRACT_MONTHS = "comodatos.contractMonths"
K_COM_AVG_MODE = "comodatos.avgMode"
K_COM_FILTRO_TIPO = "comodatos.filtroTipo"


class EstadoRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT valor FROM estado WHERE clave = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_json(self, key: str, default: Any = None) -> Any:
        """Valor decodificado; ante ausencia o JSON inválido, ``default``."""
        raw = self.get(key, None)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def get_float(self, key: str, default: float) -> float:
        v = self.get_json(key, None)
        if v is None:
            return default
        try:
            x = float(v)
        except (TypeError, ValueError):
            return default
        return x if math.isfinite(x) else default

    def set_json(self, key: str, value: Any) -> None:
        self.set_many([(key, value)])

    def set_many(self, items: Iterable[Tuple[str, Any]]) -> None:
        ahora = datetime.now().isoformat(timespec="seconds")
        rows = [(k, json.dumps(v, ensure_ascii=False), ahora) for k, v in items]
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO estado (clave, valor, actualizado)
                VALUES (?, ?, ?)
                ON CONFLICT(clave) DO UPDATE SET valor=excluded.valor, actualizado=excluded.actualizado
                """,
                rows,
            )

    def listar(self, prefix: str = "") -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            cur = c.execute(
                "SELECT clave, valor, actualizado FROM estado WHERE clave LIKE ? ORDER BY clave",
                (prefix + "%",),
            )
            return [dict(r) for r in cur.fetchall()]
