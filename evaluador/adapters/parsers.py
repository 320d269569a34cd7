"""
Utilidades de parsing para hojas exportadas como CSV.

Este módulo convierte el texto de una exportación CSV (Google Sheets,
Excel en configuración regional chilena, etc.) en una grilla de strings y
luego en registros indexados por cabecera. También concentra la coerción de
valores sueltos de planilla: números con formato local y fechas en los
formatos que aparecen en las hojas de ventas y comodatos.

Nada aquí lanza excepciones por datos mal formados: el parsing es
tolerante y degrada al mejor resultado posible.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

BOM = "\ufeff"
SAMPLE_SIZE = 1000

MESES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

_NON_NUMERIC_RE = re.compile(r"[^0-9.,\-]")
_THOUSANDS_RE = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_DMY_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_GVIZ_DATE_RE = re.compile(r"^Date\((\d{4}),\s*(\d{1,2}),\s*(\d{1,2})")


# ---------------------------
# CSV
# ---------------------------

def detect_delimiter(sample: str) -> str:
    """Decide entre ',' y ';' contando los que aparecen fuera de comillas.

    Solo se mira la primera línea lógica de la muestra (la cabecera). En
    empate gana la coma.
    """
    in_quotes = False
    commas = semis = 0
    for ch in sample:
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if in_quotes:
            continue
        if ch == ",":
            commas += 1
        elif ch == ";":
            semis += 1
        elif ch in "\r\n":
            break
    return ";" if semis > commas else ","


def parse_csv(text: str) -> List[List[str]]:
    """Convierte texto CSV en una lista de filas de strings.

    - comillas dobles delimitan campos; '""' dentro de un campo es una comilla
    - delimitador (',' o ';') detectado sobre los primeros 1000 caracteres
    - saltos de línea dentro de comillas se conservan
    - '\\r' fuera de comillas se descarta
    - filas completamente vacías al final se eliminan
    """
    if text is None:
        return []
    if text.startswith(BOM):
        text = text[1:]
    delim = detect_delimiter(text[:SAMPLE_SIZE])

    rows: List[List[str]] = []
    row: List[str] = []
    cur: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            if in_quotes and i + 1 < n and text[i + 1] == '"':
                cur.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif not in_quotes and ch == delim:
            row.append("".join(cur))
            cur = []
        elif not in_quotes and ch == "\n":
            row.append("".join(cur))
            rows.append(row)
            row, cur = [], []
        elif not in_quotes and ch == "\r":
            pass
        else:
            cur.append(ch)
        i += 1
    row.append("".join(cur))
    rows.append(row)

    while rows and all(c.strip() == "" for c in rows[-1]):
        rows.pop()
    return rows


def rows_to_records(rows: List[List[str]]) -> List[Dict[str, Optional[str]]]:
    """Mapea la grilla a registros usando la primera fila no vacía como cabecera.

    Filas completamente vacías se saltan. Si una fila tiene menos celdas que
    la cabecera, las claves faltantes quedan en ``None``.
    """
    head_idx = next((i for i, r in enumerate(rows) if any(c.strip() for c in r)), None)
    if head_idx is None:
        return []
    header = [h.replace("\r", "").strip() for h in rows[head_idx]]
    out: List[Dict[str, Optional[str]]] = []
    for r in rows[head_idx + 1:]:
        if not r or all((c or "").strip() == "" for c in r):
            continue
        out.append({h: (r[j] if j < len(r) else None) for j, h in enumerate(header)})
    return out


# ---------------------------
# cabeceras
# ---------------------------

def slug(s: Any) -> str:
    """Normaliza cabeceras: minúsculas, sin acentos, sin no-alfanuméricos."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüçñ", "aaaaaeeeeiiiiooooouuuucn"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    return re.sub(r"\s+", " ", s).strip()


def is_blank(val: Any) -> bool:
    """True para None, NaN/NA de pandas y strings vacíos."""
    if val is None:
        return True
    if isinstance(val, str):
        return val.strip() == ""
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


# ---------------------------
# números
# ---------------------------

def to_number(val: Any, default: Optional[float] = None) -> Optional[float]:
    """Coerción numérica tolerante al formato local.

    Valores ya numéricos se devuelven tal cual. En strings se eliminan los
    caracteres que no sean dígitos, '.', ',' o '-'; si hay coma, los puntos
    son separadores de miles y la coma es el decimal ("1.234,56" -> 1234.56).
    Sin coma, un punto seguido de grupos de tres dígitos también se lee como
    miles ("1.234.567" -> 1234567); cualquier otro punto es decimal.

    Devuelve ``default`` cuando no hay número.
    """
    if is_blank(val):
        return default
    if isinstance(val, bool):
        return float(val)
    if isinstance(val, (int, float)):
        x = float(val)
        return default if (math.isnan(x) or math.isinf(x)) else x
    s = _NON_NUMERIC_RE.sub("", str(val))
    if not s:
        return default
    if "," in s:
        s = s.replace(".", "").replace(",", ".", 1).replace(",", "")
    elif _THOUSANDS_RE.match(s):
        s = s.replace(".", "")
    try:
        x = float(s)
    except ValueError:
        return default
    return default if (math.isnan(x) or math.isinf(x)) else x


# ---------------------------
# fechas
# ---------------------------

def _safe_date(y: int, m: int, d: int) -> Optional[date]:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def parse_date(val: Any) -> Optional[date]:
    """Convierte un valor de planilla a ``date`` si es posible.

    Acepta ``date``/``datetime``/``Timestamp``, ISO (YYYY-MM-DD...), el
    literal ``Date(y,m,d)`` de GViz (mes base 0) y DD/MM/AAAA o DD-MM-AA.
    """
    if is_blank(val):
        return None
    if isinstance(val, pd.Timestamp):
        return val.date()
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    m = _GVIZ_DATE_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)) + 1, int(m.group(3)))
    m = _ISO_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _DMY_RE.match(s)
    if m:
        yy = m.group(3)
        year = int("20" + yy) if len(yy) == 2 else int(yy)
        return _safe_date(year, int(m.group(2)), int(m.group(1)))
    d = pd.to_datetime(s, dayfirst=True, errors="coerce")
    if pd.isna(d):
        return None
    return d.date()


def date_from_periodo(year: Any, periodo_mes: Any, periodo: Any = None) -> Optional[date]:
    """Arma el día 1 del mes a partir de columnas 'Año' + 'Periodo MES'.

    Si 'Periodo MES' no trae número, se busca el nombre del mes en 'Periodo'
    ("Marzo 2025" -> 3).
    """
    ym = re.search(r"\d{4}", "" if is_blank(year) else str(year))
    if not ym:
        return None
    y = int(ym.group(0))
    mm = re.search(r"\d{1,2}", "" if is_blank(periodo_mes) else str(periodo_mes))
    m = int(mm.group(0)) if mm else None
    if m is None and not is_blank(periodo):
        txt = str(periodo).lower()
        m = next((i + 1 for i, nombre in enumerate(MESES) if nombre in txt), None)
    if m is None or not (1 <= m <= 12):
        return None
    return date(y, m, 1)
