# evaluador/usecases/catalogo.py
"""
UC: Cargar catálogo (Google Sheets, CSV o XLSX) y guardarlo como snapshot.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Dict, Optional

from evaluador.adapters.mapeos import normalize_catalog
from evaluador.adapters.sheets_loader import load_table
from evaluador.config import DB_PATH, DEFAULT_CATALOG_URL
from evaluador.domain.models import CatalogItem
from evaluador.errors import EvaluadorError
from evaluador.infra.logger import log_system_event, log_transaction, print_system
from evaluador.infra.repositories import K_CATALOG, K_COM_CATALOG_URL, EstadoRepo


def cargar_catalogo(source: Optional[str] = None, db_path: str = DB_PATH) -> Dict[str, CatalogItem]:
    """Carga el catálogo desde ``source``.

    Sin ``source`` se usa la URL guardada en el estado y, si no hay, la hoja
    por defecto.

    El catálogo guardado se reemplaza entero solo si la carga y la
    normalización terminan bien.
    """
    source = source or EstadoRepo(db_path).get_json(K_COM_CATALOG_URL) or DEFAULT_CATALOG_URL
    log_system_event("catalogo_carga_inicio", {"source": source})
    try:
        catalog = normalize_catalog(load_table(source))
    except (EvaluadorError, OSError, ValueError) as e:
        log_transaction("cargar_catalogo", {"source": source}, error=str(e))
        raise

    guardar_catalogo(catalog, db_path)
    log_transaction("cargar_catalogo", {"source": source}, result={"items": len(catalog)})
    print_system(f"Catálogo cargado: {len(catalog)} productos")
    return catalog


def guardar_catalogo(catalog: Dict[str, CatalogItem], db_path: str = DB_PATH) -> None:
    EstadoRepo(db_path).set_json(K_CATALOG, {code: asdict(it) for code, it in catalog.items()})


def catalogo_guardado(db_path: str = DB_PATH) -> Dict[str, CatalogItem]:
    """Catálogo del estado; entradas ilegibles se descartan."""
    raw = EstadoRepo(db_path).get_json(K_CATALOG, {})
    out: Dict[str, CatalogItem] = {}
    if not isinstance(raw, dict):
        return out
    for code, d in raw.items():
        if not isinstance(d, dict):
            continue
        try:
            out[code] = CatalogItem(**d)
        except TypeError:
            continue
    return out
