"""
Mapeos de registros de planilla al modelo del dominio.

Cada hoja llega como una lista de diccionarios con los nombres de columna
tal como vienen (mayúsculas, acentos y variantes según quien armó la
planilla). Estas funciones:
- normalizan cabeceras a un 'slug' (minúsculas, sin acentos);
- resuelven cada campo canónico con una tabla ordenada de alias, donde el
  primer valor no vacío gana;
- devuelven dataclasses del dominio listas para los motores de cálculo.

Observaciones:
- El esquema de la hoja de comodatos (contrato vs. salida) se decide una
  sola vez por hoja, según las columnas presentes.
- Registros sin clave (código, RUT) se descartan en silencio.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from evaluador.adapters.parsers import date_from_periodo, is_blank, parse_date, slug, to_number
from evaluador.domain.exposicion import month_start, months_ago
from evaluador.domain.models import CatalogItem, ComodatoRow, EquipoCatalogo, VentasRow
from evaluador.errors import CatalogError

Aliases = Tuple[str, ...]

# Alias por campo canónico, en orden de prioridad (ya en forma de slug)
CATALOG_ALIASES: Dict[str, Aliases] = {
    "code": ("code", "codigo", "itemcode", "codigo producto"),
    "name": ("name", "nombre", "descripcion", "descripcion producto", "producto", "dscription"),
    "price_list": ("price list", "price", "precio", "lista", "precio lista"),
    "cost": ("cost", "costo"),
    "kilos": ("kilos", "kg"),
}

VENTAS_ALIASES: Dict[str, Aliases] = {
    "rut": ("rut cliente", "rut", "codigo cliente", "odigo liente"),
    "sn": ("itemcode", "sn", "serie"),
    "cliente": ("nombre cliente", "cliente"),
    "fecha": ("docdate", "fecha", "doc date"),
    "anio": ("ano", "anio"),
    "periodo_mes": ("periodo mes",),
    "periodo": ("periodo",),
    "qty": ("quantity", "unidades", "cantidad"),
    "factor": ("u factorflete", "factor"),
    "kilos": ("cantidad kilos", "kilos", "kg"),
    "total": ("global venta", "total"),
    "precio": ("precio por linea", "pv antes del descuento", "precio"),
    "descuento": ("descuento",),
    "prod_name": ("dscription", "u descripcion det", "producto", "descripcion"),
}

CONTRATO_ALIASES: Dict[str, Aliases] = {
    "rut": ("rut", "rut cliente", "cliente rut"),
    "sn": ("sn", "serie", "codigo producto", "cod sn", "codigo sn"),
    "fecha_instalacion": ("fecha instalacion", "instalacion", "fecha"),
    "meses_contrato": ("meses contrato", "meses"),
    "costo_total": ("costo total",),
    "costo_mensual": ("costo mensual",),
    "cliente": ("cliente", "nombre cliente", "razon", "razon social"),
}

SALIDA_ALIASES: Dict[str, Aliases] = {
    "rut": ("rut cliente", "rut"),
    "sn": ("codigo producto", "sn", "serie"),
    "cliente": ("nombre cliente", "cliente"),
    "total": ("total",),
    "precio_unitario": ("precio unitario",),
    "cantidad": ("cantidad",),
    "fecha": ("fecha contab",),
    "anio": ("ano", "anio"),
    "periodo_mes": ("periodo mes",),
    "periodo": ("periodo",),
}

ESQUEMA_CONTRATO = "contrato"
ESQUEMA_SALIDA = "salida"

# Los registros derivados de salidas no tienen plazo: quedan siempre vigentes
SALIDA_MESES_CONTRATO = 999


# ---------------------------
# utilitarios
# ---------------------------

def _index(rec: Mapping[str, Any]) -> Dict[str, Any]:
    """Indexa un registro por slug de cabecera; el primer valor no vacío gana."""
    idx: Dict[str, Any] = {}
    for k, v in rec.items():
        s = slug(k)
        if s not in idx or (is_blank(idx[s]) and not is_blank(v)):
            idx[s] = v
    return idx


def pick(idx: Mapping[str, Any], aliases: Aliases) -> Any:
    """Primer valor no vacío entre los alias, en orden."""
    for a in aliases:
        v = idx.get(a)
        if not is_blank(v):
            return v
    return None


def _text(v: Any) -> str:
    return "" if is_blank(v) else str(v).strip()


def _opt_text(v: Any, upper: bool = False) -> Optional[str]:
    s = _text(v)
    if upper:
        s = s.upper()
    return s or None


# ---------------------------
# catálogo
# ---------------------------

def normalize_catalog(records: Iterable[Mapping[str, Any]]) -> Dict[str, CatalogItem]:
    """Convierte registros sueltos en el catálogo indexado por código.

    Raises:
        CatalogError: si ningún registro trae un código reconocible.
    """
    out: Dict[str, CatalogItem] = {}
    for rec in records:
        idx = _index(rec)
        code = _text(pick(idx, CATALOG_ALIASES["code"])).upper()
        if not code:
            continue
        out[code] = CatalogItem(
            code=code,
            name=_text(pick(idx, CATALOG_ALIASES["name"])),
            price_list=to_number(pick(idx, CATALOG_ALIASES["price_list"]), 0.0),
            cost=to_number(pick(idx, CATALOG_ALIASES["cost"])),
            kilos=to_number(pick(idx, CATALOG_ALIASES["kilos"])),
        )
    if not out:
        raise CatalogError("No se encontraron columnas esperadas (code, name, price_list)")
    return out


def catalogo_para_comodatos(catalog: Mapping[str, CatalogItem]) -> Dict[str, EquipoCatalogo]:
    """Vista de equipos: costo mensual = costo si existe, si no precio lista."""
    return {
        code: EquipoCatalogo(
            code=code,
            name=it.name,
            precio=it.price_list,
            costo_mensual=it.cost if it.cost is not None else it.price_list,
        )
        for code, it in catalog.items()
    }


# ---------------------------
# ventas
# ---------------------------

def _descuento(v: Any) -> float:
    d = to_number(v, 0.0)
    if d > 1:
        d = d / 100
    if d < 0 or d > 1:
        d = 0.0
    return d


def map_ventas(records: Iterable[Mapping[str, Any]]) -> List[VentasRow]:
    """Mapea la hoja de ventas históricas.

    - fecha: DocDate/Fecha o, si falta, Año + Periodo MES / Periodo;
    - kilos: 'Cantidad Kilos' o cantidad * factor de flete;
    - monto: 'Global Venta'/'Total' o precio * cantidad * (1 - descuento).
    Filas sin RUT o sin fecha se descartan.
    """
    a = VENTAS_ALIASES
    out: List[VentasRow] = []
    for rec in records:
        idx = _index(rec)
        rut = _text(pick(idx, a["rut"]))
        if not rut:
            continue
        fecha = parse_date(pick(idx, a["fecha"])) or date_from_periodo(
            pick(idx, a["anio"]), pick(idx, a["periodo_mes"]), pick(idx, a["periodo"])
        )
        if fecha is None:
            continue
        qty = to_number(pick(idx, a["qty"]), 0.0)
        factor = to_number(pick(idx, a["factor"]), 0.0)
        kilos = to_number(pick(idx, a["kilos"]), 0.0)
        if not kilos and factor and qty:
            kilos = factor * qty

        total = pick(idx, a["total"])
        if total is not None:
            monto = to_number(total, 0.0)
        else:
            precio = to_number(pick(idx, a["precio"]), 0.0)
            monto = precio * qty * (1 - _descuento(pick(idx, a["descuento"])))

        out.append(VentasRow(
            rut=rut,
            fecha=fecha,
            monto=monto,
            sn=_opt_text(pick(idx, a["sn"]), upper=True),
            qty=qty,
            kilos=kilos,
            cliente=_opt_text(pick(idx, a["cliente"])),
            prod_name=_opt_text(pick(idx, a["prod_name"])),
        ))
    return out


# ---------------------------
# comodatos
# ---------------------------

def detectar_esquema(records: Sequence[Mapping[str, Any]]) -> str:
    """'contrato' si alguna fila trae fecha de instalación y meses; si no 'salida'."""
    for rec in records:
        idx = _index(rec)
        if pick(idx, CONTRATO_ALIASES["fecha_instalacion"]) is not None and \
                pick(idx, CONTRATO_ALIASES["meses_contrato"]) is not None:
            return ESQUEMA_CONTRATO
    return ESQUEMA_SALIDA


def map_comodatos_contrato(records: Iterable[Mapping[str, Any]]) -> List[ComodatoRow]:
    """Hoja con fecha de instalación, meses de contrato y costo total o mensual."""
    a = CONTRATO_ALIASES
    out: List[ComodatoRow] = []
    for rec in records:
        idx = _index(rec)
        rut = _text(pick(idx, a["rut"]))
        fecha = parse_date(pick(idx, a["fecha_instalacion"]))
        meses = to_number(pick(idx, a["meses_contrato"]), 0.0)
        costo_total = to_number(pick(idx, a["costo_total"]))
        costo_mensual = to_number(pick(idx, a["costo_mensual"]))
        if not rut or fecha is None or not (costo_total or costo_mensual) or not meses > 0:
            continue
        out.append(ComodatoRow(
            rut=rut,
            fecha_instalacion=fecha,
            meses_contrato=int(meses),
            origen=ESQUEMA_CONTRATO,
            sn=_opt_text(pick(idx, a["sn"]), upper=True),
            costo_total=costo_total,
            costo_mensual=costo_mensual,
            cliente=_opt_text(pick(idx, a["cliente"])),
        ))
    return out


def map_comodatos_salida(records: Iterable[Mapping[str, Any]], hoy: date) -> List[ComodatoRow]:
    """Hoja de salidas de comodato (transacciones).

    Agrupa por (RUT, SN) dentro de los últimos 24 meses, suma por mes
    calendario y deriva una cuota mensual = promedio de los últimos 3 meses
    con movimiento. La fecha de instalación sintética es la primera salida.
    """
    a = SALIDA_ALIASES
    two_years_ago = month_start(months_ago(hoy, 24))
    pares: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for rec in records:
        idx = _index(rec)
        rut = _text(pick(idx, a["rut"]))
        total_raw = pick(idx, a["total"])
        if total_raw is not None:
            total = to_number(total_raw, 0.0)
        else:
            total = to_number(pick(idx, a["precio_unitario"]), 0.0) * to_number(pick(idx, a["cantidad"]), 0.0)
        if not rut or not total:
            continue
        fecha = parse_date(pick(idx, a["fecha"])) or date_from_periodo(
            pick(idx, a["anio"]), pick(idx, a["periodo_mes"]), pick(idx, a["periodo"])
        ) or hoy
        if fecha < two_years_ago:
            continue
        sn = _opt_text(pick(idx, a["sn"]), upper=True)
        par = pares.setdefault((rut, sn or ""), {
            "sn": sn, "cliente": None, "meses": defaultdict(float), "primera": fecha,
        })
        par["meses"][(fecha.year, fecha.month)] += total
        par["primera"] = min(par["primera"], fecha)
        if not par["cliente"]:
            par["cliente"] = _opt_text(pick(idx, a["cliente"]))

    out: List[ComodatoRow] = []
    for (rut, _), par in pares.items():
        ultimos3 = sorted(par["meses"])[-3:]
        suma3 = sum(par["meses"][m] for m in ultimos3)
        out.append(ComodatoRow(
            rut=rut,
            fecha_instalacion=par["primera"],
            meses_contrato=SALIDA_MESES_CONTRATO,
            origen=ESQUEMA_SALIDA,
            sn=par["sn"],
            costo_mensual=suma3 / max(1, len(ultimos3)),
            cliente=par["cliente"],
            entregado_24m=sum(par["meses"].values()),
        ))
    return out


def map_comodatos(records: Sequence[Mapping[str, Any]], hoy: date) -> Tuple[str, List[ComodatoRow]]:
    """Detecta el esquema una vez y aplica el mapeo correspondiente."""
    esquema = detectar_esquema(records)
    if esquema == ESQUEMA_CONTRATO:
        return esquema, map_comodatos_contrato(records)
    return esquema, map_comodatos_salida(records, hoy)
