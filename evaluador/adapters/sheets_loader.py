# evaluador/adapters/sheets_loader.py
"""
Carga de hojas remotas (Google Sheets) y locales (CSV / XLSX).

Estrategia para URLs de Google Sheets:
1. exportación CSV (``/export?format=csv[&gid=..]``);
2. si falla o viene vacía, protocolo de consulta GViz
   (``/gviz/tq?tqx=out:json;reqId=N``), cuya respuesta es una llamada
   JavaScript ``google.visualization.Query.setResponse({...})`` de la que se
   extrae el JSON. Cada llamada usa su propio ``reqId``: no hay estado global
   compartido entre cargas concurrentes.

Todas las fuentes devuelven la misma forma: ``list[dict]`` indexada por
la cabecera de la hoja.
"""

from __future__ import annotations

import itertools
import json
import os
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

import pandas as pd
import requests

from evaluador.adapters.parsers import BOM, parse_csv, rows_to_records
from evaluador.config import DEFAULTS, SHEETS_HOST
from evaluador.errors import SheetLoadError
from evaluador.infra.logger import log_sheet_load

Record = Dict[str, Any]

_DOC_ID_RE = re.compile(r"spreadsheets/d/([a-zA-Z0-9\-_]+)")
_GID_QUERY_RE = re.compile(r"[?&]gid=(\d+)")
_GID_HASH_RE = re.compile(r"#gid=(\d+)")
_SET_RESPONSE_RE = re.compile(r"setResponse\((.*)\)\s*;?\s*$", re.DOTALL)

_req_ids = itertools.count(1)
_req_lock = threading.Lock()


@dataclass(frozen=True)
class SheetRef:
    csv_url: str
    doc_id: Optional[str] = None
    gid: Optional[str] = None


def is_google_sheet(url: str) -> bool:
    return "docs.google.com/spreadsheets" in (url or "")


def normalize_sheet_url(url: str) -> SheetRef:
    """Deriva la URL de exportación CSV, el id del documento y la pestaña.

    Una URL que no es de Google Sheets se usa tal cual, sin id (no hay
    fallback posible).
    """
    url = (url or "").strip()
    if not is_google_sheet(url):
        return SheetRef(csv_url=url)
    m_id = _DOC_ID_RE.search(url)
    if not m_id:
        return SheetRef(csv_url=url)
    doc_id = m_id.group(1)
    m_gid = _GID_QUERY_RE.search(url) or _GID_HASH_RE.search(url)
    gid = m_gid.group(1) if m_gid else None
    csv_url = f"{SHEETS_HOST}/spreadsheets/d/{doc_id}/export?format=csv"
    if gid:
        csv_url += f"&gid={gid}"
    return SheetRef(csv_url=csv_url, doc_id=doc_id, gid=gid)


def gviz_url(doc_id: str, gid: Optional[str], req_id: Optional[int] = None) -> str:
    gid_part = f"gid={gid}&" if gid else ""
    url = f"{SHEETS_HOST}/spreadsheets/d/{doc_id}/gviz/tq?{gid_part}tqx=out:json"
    if req_id is not None:
        url += f";reqId={req_id}"
    return url


def _next_req_id() -> int:
    with _req_lock:
        return next(_req_ids)


# ---------------------------
# caminos de carga
# ---------------------------

def fetch_csv_records(url: str, timeout: Optional[float] = None) -> List[Record]:
    """Descarga un CSV y lo convierte en registros.

    Raises:
        requests.RequestException: error HTTP o de red.
        ValueError: respuesta sin filas de datos.
    """
    resp = requests.get(url, timeout=timeout or DEFAULTS.http_timeout)
    resp.raise_for_status()
    text = resp.content.decode("utf-8", errors="replace")
    if text.startswith(BOM):
        text = text[1:]
    records = rows_to_records(parse_csv(text))
    if not records:
        raise ValueError("CSV vacío")
    return records


_GVIZ_DATE_TYPES = ("date", "datetime", "timeofday")


def _gviz_cell_text(cell: Optional[Dict[str, Any]], tipo: str) -> str:
    """Texto de una celda GViz tal como lo entregaría la exportación CSV.

    Se usa el valor formateado ``f`` salvo en fechas (``Date(...)`` lo lee
    ``parse_date``); sin ``f``, los números enteros pierden el ``.0``.
    """
    cell = cell or {}
    v = cell.get("v")
    if v is None:
        return ""
    if tipo not in _GVIZ_DATE_TYPES and cell.get("f") is not None:
        return str(cell["f"])
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def parse_gviz_response(body: str, req_id: Optional[int] = None) -> List[Record]:
    """Extrae la tabla de una respuesta ``setResponse({...})``.

    Raises:
        ValueError: cuerpo sin payload, ``status == 'error'`` o ``reqId``
            distinto del enviado.
    """
    m = _SET_RESPONSE_RE.search(body or "")
    if not m:
        raise ValueError("Respuesta GViz sin setResponse")
    payload = json.loads(m.group(1))
    if payload.get("status") == "error":
        errs = payload.get("errors") or []
        detalle = "; ".join(str(e.get("detailed_message") or e.get("message") or e) for e in errs)
        raise ValueError(f"GViz error: {detalle or 'sin detalle'}")
    if req_id is not None and str(payload.get("reqId", req_id)) != str(req_id):
        raise ValueError(f"GViz reqId inesperado: {payload.get('reqId')} (esperado {req_id})")

    table = payload.get("table") or {}
    cols = []
    tipos = []
    for i, c in enumerate(table.get("cols") or []):
        c = c or {}
        cols.append(c.get("label") or c.get("id") or f"col{i}")
        tipos.append(c.get("type") or "")
    out: List[Record] = []
    for row in table.get("rows") or []:
        cells = (row or {}).get("c") or []
        rec: Record = {}
        for i, name in enumerate(cols):
            cell = cells[i] if i < len(cells) else None
            rec[name] = _gviz_cell_text(cell, tipos[i])
        out.append(rec)
    return out


def fetch_gviz_records(doc_id: str, gid: Optional[str] = None, timeout: Optional[float] = None) -> List[Record]:
    """Carga una pestaña por el protocolo de consulta de visualización."""
    req_id = _next_req_id()
    url = gviz_url(doc_id, gid, req_id)
    resp = requests.get(url, timeout=timeout or DEFAULTS.gviz_timeout)
    resp.raise_for_status()
    return parse_gviz_response(resp.text, req_id=req_id)


def load_sheet(url: str) -> List[Record]:
    """Carga una hoja remota: CSV primero, GViz como respaldo.

    Raises:
        SheetLoadError: con las URLs intentadas y la causa de cada fallo.
    """
    ref = normalize_sheet_url(url)
    try:
        records = fetch_csv_records(ref.csv_url)
        log_sheet_load("csv", ref.csv_url, rows=len(records))
        return records
    except (requests.RequestException, ValueError) as e:
        csv_error = e
        log_sheet_load("csv", ref.csv_url, error=str(e))

    if not ref.doc_id:
        raise SheetLoadError(
            f"No se pudo leer el CSV ({csv_error}) y la URL no permite respaldo GViz",
            attempted_urls=[ref.csv_url],
            no_fallback=True,
        )

    g_url = gviz_url(ref.doc_id, ref.gid)
    try:
        records = fetch_gviz_records(ref.doc_id, ref.gid)
        log_sheet_load("gviz", g_url, rows=len(records))
        return records
    except (requests.RequestException, ValueError) as e:
        log_sheet_load("gviz", g_url, error=str(e))
        raise SheetLoadError(
            f"Falló CSV ({csv_error}) y GViz ({e})",
            attempted_urls=[ref.csv_url, g_url],
        ) from e


# ---------------------------
# archivos locales
# ---------------------------

def _excel_records(path: str) -> List[Record]:
    df = pd.read_excel(path, dtype=object)
    df = df.astype(object).where(pd.notna(df), None)
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def load_table(source: str) -> List[Record]:
    """Carga una tabla desde URL, archivo ``.csv`` o planilla ``.xlsx/.xls``.

    Raises:
        SheetLoadError: fuente remota inaccesible.
        FileNotFoundError: archivo local inexistente.
        ValueError: extensión no soportada.
    """
    source = (source or "").strip()
    if source.startswith(("http://", "https://")):
        return load_sheet(source)

    if not os.path.exists(source):
        raise FileNotFoundError(source)
    ext = os.path.splitext(source)[1].lower()
    if ext in (".xlsx", ".xls"):
        records = _excel_records(source)
        log_sheet_load("xlsx", source, rows=len(records))
        return records
    if ext in (".csv", ".txt"):
        with open(source, "r", encoding="utf-8-sig") as f:
            records = rows_to_records(parse_csv(f.read()))
        log_sheet_load("archivo", source, rows=len(records))
        return records
    raise ValueError(f"Formato no soportado: {ext or source}")


# ---------------------------
# snapshots
# ---------------------------

T = TypeVar("T")


class SnapshotSlot(Generic[T]):
    """Guarda el último resultado completo de una carga.

    ``begin()`` entrega un ticket monotónico; ``apply(ticket, value)`` solo
    reemplaza el valor si ningún ticket posterior ya fue aplicado. Así una
    carga lenta que termina después de una más nueva se descarta entera.
    """

    def __init__(self, value: Optional[T] = None):
        self._lock = threading.Lock()
        self._seq = 0
        self._applied = 0
        self._value = value

    def begin(self) -> int:
        with self._lock:
            self._seq += 1
            return self._seq

    def apply(self, ticket: int, value: T) -> bool:
        with self._lock:
            if ticket <= self._applied:
                return False
            self._applied = ticket
            self._value = value
            return True

    @property
    def value(self) -> Optional[T]:
        with self._lock:
            return self._value

    def snapshot(self) -> Tuple[int, Optional[T]]:
        with self._lock:
            return self._applied, self._value
