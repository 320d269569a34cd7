# evaluador/usecases/cotizar.py
"""
UC: Evaluación de negocio (cotización).

- edición de líneas (alta, selección de código, duplicar, quitar);
- persistencia del escenario en el estado de sesión;
- exportación / importación del escenario en JSON (``scenario-v2``);
- exportación a planilla (Resumen, Productos, Comodatos);
- aceptar: limpia la evaluación e incrementa el número de documento.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from evaluador.config import DB_PATH, DEFAULTS, SCENARIO_VERSION
from evaluador.domain.formulas import compute_quote, lookup
from evaluador.domain.models import CatalogItem, ComodatoLine, QuoteParams, QuoteTotals, SaleLine
from evaluador.errors import ScenarioError
from evaluador.infra import repositories as keys
from evaluador.infra.logger import log_calculo, log_file_operation, log_transaction
from evaluador.infra.repositories import EstadoRepo
from evaluador.usecases.catalogo import catalogo_guardado


@dataclass
class Escenario:
    """Estado editable de una evaluación."""
    customer_name: str = ""
    client_rut: str = ""
    client_city: str = ""
    client_exec: str = ""
    notes: str = ""
    params: QuoteParams = field(default_factory=QuoteParams)
    sale_lines: List[SaleLine] = field(default_factory=list)
    comodato_lines: List[ComodatoLine] = field(default_factory=list)


def fecha_hoy(hoy: Optional[date] = None) -> str:
    return (hoy or date.today()).strftime("%d-%m-%Y")


# ---------------------------
# líneas
# ---------------------------

def nueva_linea_venta() -> SaleLine:
    return SaleLine(code="", name="", price_list=0.0, kilos=1.0, qty=1.0, sell_price=0.0, discount_pct=0.0)


def nueva_linea_comodato() -> ComodatoLine:
    return ComodatoLine(code="", name="", price_list=0.0, qty=1.0)


def seleccionar_codigo(line: SaleLine, code: str, catalog: Mapping[str, CatalogItem]) -> SaleLine:
    """Asigna el código y copia nombre, precio lista y kilos desde el catálogo.

    Un código desconocido deja nombre vacío, precio 0 y kilos 1.
    """
    item = lookup(catalog, code)
    return replace(
        line,
        code=(code or "").strip().upper(),
        name=item.name if item else "",
        price_list=item.price_list if item else 0.0,
        kilos=item.kilos if item and item.kilos is not None else 1.0,
    )


def seleccionar_codigo_comodato(line: ComodatoLine, code: str, catalog: Mapping[str, CatalogItem]) -> ComodatoLine:
    item = lookup(catalog, code)
    return replace(
        line,
        code=(code or "").strip().upper(),
        name=item.name if item else "",
        price_list=item.price_list if item else 0.0,
    )


def duplicar_linea(lines: Sequence[SaleLine], i: int) -> List[SaleLine]:
    """Inserta una copia de la línea ``i`` inmediatamente después."""
    out = list(lines)
    out.insert(i + 1, replace(out[i]))
    return out


def quitar_linea(lines: Sequence[Any], i: int) -> List[Any]:
    return [l for idx, l in enumerate(lines) if idx != i]


def calcular(esc: Escenario, catalog: Mapping[str, CatalogItem]) -> QuoteTotals:
    totals = compute_quote(esc.sale_lines, esc.comodato_lines, catalog, esc.params)
    log_calculo(
        "cotizacion",
        lineas=len(esc.sale_lines),
        ventas_tot=totals.ventas_tot,
        final_margin_pct=totals.final_margin_pct,
        viable=totals.viable,
    )
    return totals


# ---------------------------
# (de)serialización de líneas
# ---------------------------

_SALE_FIELDS = {
    "code": "code",
    "name": "name",
    "priceList": "price_list",
    "kilos": "kilos",
    "qty": "qty",
    "sellPrice": "sell_price",
    "discountPct": "discount_pct",
    "costOverride": "cost_override",
}
_COM_FIELDS = {"code": "code", "name": "name", "priceList": "price_list", "qty": "qty"}
_TEXT_FIELDS = {"code", "name"}


def _line_to_json(line: Any, fields: Mapping[str, str]) -> Dict[str, Any]:
    return {k: getattr(line, attr) for k, attr in fields.items()}


def _line_from_json(obj: Any, fields: Mapping[str, str], cls, where: str):
    if not isinstance(obj, dict):
        raise ScenarioError(f"{where}: se esperaba un objeto")
    kwargs: Dict[str, Any] = {}
    for k, attr in fields.items():
        if k not in obj:
            continue
        v = obj[k]
        if attr in _TEXT_FIELDS:
            kwargs[attr] = "" if v is None else str(v)
        elif v is None:
            kwargs[attr] = None
        elif not _is_number(v):
            raise ScenarioError(f"{where}.{k}: valor numérico inválido ({v!r})")
        else:
            kwargs[attr] = float(v)
    return cls(**kwargs)


def sale_lines_from_json(items: Any) -> List[SaleLine]:
    if not isinstance(items, list):
        raise ScenarioError("saleLines debe ser una lista")
    return [_line_from_json(o, _SALE_FIELDS, SaleLine, f"saleLines[{i}]") for i, o in enumerate(items)]


def comodato_lines_from_json(items: Any) -> List[ComodatoLine]:
    if not isinstance(items, list):
        raise ScenarioError("comodatoLines debe ser una lista")
    return [_line_from_json(o, _COM_FIELDS, ComodatoLine, f"comodatoLines[{i}]") for i, o in enumerate(items)]


def params_to_json(p: QuoteParams) -> Dict[str, Any]:
    return {
        "commissionPct": p.commission_pct,
        "months": p.months,
        "usePriceListAsCost": p.use_price_list_as_cost,
        "commissionOnNet": p.commission_on_net,
    }


# ---------------------------
# escenario JSON
# ---------------------------

def exportar_escenario(esc: Escenario, totals: QuoteTotals, hoy: Optional[date] = None) -> Dict[str, Any]:
    """Payload ``scenario-v2`` del escenario y sus métricas."""
    return {
        "customerName": esc.customer_name,
        "date": fecha_hoy(hoy),
        "viable": totals.viable,
        "metrics": {
            "ventasTot": totals.ventas_tot,
            "comodatoTotal": totals.comodato_total_equipos,
            "comodatoMensual": totals.comodato_mensual,
            "relComVta": totals.rel_com_vta,
            "finalMarginPct": totals.final_margin_pct,
            "commissionFinalPct": totals.effective_commission_pct,
        },
        "params": params_to_json(esc.params),
        "saleLines": [_line_to_json(l, _SALE_FIELDS) for l in esc.sale_lines],
        "comodatoLines": [_line_to_json(l, _COM_FIELDS) for l in esc.comodato_lines],
        "version": SCENARIO_VERSION,
    }


def importar_escenario(text: str, base: Optional[Escenario] = None) -> Escenario:
    """Aplica un JSON de escenario sobre ``base`` y devuelve el resultado.

    Solo se reemplazan las secciones presentes; los parámetros con tipo
    incorrecto se ignoran. Todo se valida antes de construir el resultado:
    ante cualquier error no se aplica nada.

    Raises:
        ScenarioError: JSON inválido o líneas mal formadas.
    """
    try:
        data = json.loads(text or "", parse_constant=_rechazar_constante)
    except ScenarioError:
        raise
    except ValueError as e:
        raise ScenarioError(f"JSON inválido: {e}") from e
    if not isinstance(data, dict):
        raise ScenarioError("JSON inválido: se esperaba un objeto")

    base = base or Escenario()
    sale_lines = sale_lines_from_json(data["saleLines"]) if data.get("saleLines") is not None else base.sale_lines
    com_lines = comodato_lines_from_json(data["comodatoLines"]) if data.get("comodatoLines") is not None else base.comodato_lines

    params = replace(base.params)
    p = data.get("params")
    if isinstance(p, dict):
        if _is_number(p.get("commissionPct")):
            params.commission_pct = float(p["commissionPct"])
        if _is_number(p.get("months")):
            params.months = int(p["months"])
        if isinstance(p.get("usePriceListAsCost"), bool):
            params.use_price_list_as_cost = p["usePriceListAsCost"]
        if isinstance(p.get("commissionOnNet"), bool):
            params.commission_on_net = p["commissionOnNet"]

    customer = data["customerName"] if isinstance(data.get("customerName"), str) else base.customer_name
    return replace(
        base,
        customer_name=customer,
        params=params,
        sale_lines=list(sale_lines),
        comodato_lines=list(com_lines),
    )


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _rechazar_constante(nombre: str) -> Any:
    raise ScenarioError(f"JSON inválido: valor no finito {nombre}")


def leer_escenario(path: str, base: Optional[Escenario] = None) -> Escenario:
    with open(path, "r", encoding="utf-8") as f:
        return importar_escenario(f.read(), base=base)


def importar_escenario_archivo(path: str, db_path: str = DB_PATH) -> Escenario:
    """Lee un JSON de escenario, lo aplica sobre el estado guardado y persiste."""
    repo = EstadoRepo(db_path)
    try:
        esc = leer_escenario(path, base=cargar_escenario(repo))
    except ScenarioError as e:
        log_transaction("importar_escenario", {"path": path}, error=str(e))
        raise
    guardar_escenario(repo, esc)
    log_transaction("importar_escenario", {"path": path}, result={"lineas": len(esc.sale_lines)})
    return esc


# ---------------------------
# planilla
# ---------------------------

def _si_no(v: bool) -> str:
    return "Sí" if v else "No"


def tablas_xlsx(esc: Escenario, totals: QuoteTotals, hoy: Optional[date] = None) -> Dict[str, pd.DataFrame]:
    """DataFrames de las hojas Resumen, Productos y Comodatos."""
    p = esc.params
    resumen = pd.DataFrame([
        {"Campo": "Cliente", "Valor": esc.customer_name},
        {"Campo": "Fecha", "Valor": fecha_hoy(hoy)},
        {"Campo": "Ventas mensual", "Valor": totals.ventas_tot},
        {"Campo": "Comodato total", "Valor": totals.comodato_total_equipos},
        {"Campo": "Comodato mensual", "Valor": totals.comodato_mensual},
        {"Campo": "% Rel. Comodato/Venta", "Valor": totals.rel_com_vta},
        {"Campo": "Margen final", "Valor": totals.final_margin_pct},
        {"Campo": "Viable", "Valor": _si_no(totals.viable)},
        {"Campo": "% Comisión base", "Valor": p.commission_pct},
        {"Campo": "% Comisión final", "Valor": totals.effective_commission_pct},
        {"Campo": "Meses contrato", "Valor": p.months},
        {"Campo": "Usar lista como costo si falta", "Valor": _si_no(p.use_price_list_as_cost)},
        {"Campo": "Comisión sobre venta neta de comodato", "Valor": _si_no(p.commission_on_net)},
    ], columns=["Campo", "Valor"])

    productos = pd.DataFrame([
        {
            "N": i + 1,
            "codigo": r.line.code,
            "nombre": r.line.name,
            "kilos_por_pres": r.line.kilos,
            "presentaciones_mes": r.line.qty,
            "precio_venta_kg_bruto": r.line.sell_price,
            "descuento_pct": r.line.discount_pct or 0,
            "precio_venta_kg_efectivo": r.price_sale_kg,
            "kilos_mes": r.kilos_mes,
            "venta": r.venta,
            "costo_kg_usado": r.costo_kg,
            "margen_bruto": r.margen_bruto,
            "asignacion_comodato": r.asig_comodato,
            "comision": r.comision,
            "margen_final": r.margen_final,
            "margen_final_pct": r.margen_final_pct,
        }
        for i, r in enumerate(totals.lines)
    ], columns=[
        "N", "codigo", "nombre", "kilos_por_pres", "presentaciones_mes",
        "precio_venta_kg_bruto", "descuento_pct", "precio_venta_kg_efectivo",
        "kilos_mes", "venta", "costo_kg_usado", "margen_bruto",
        "asignacion_comodato", "comision", "margen_final", "margen_final_pct",
    ])

    comodatos = pd.DataFrame([
        {
            "N": i + 1,
            "codigo": l.code,
            "nombre": l.name,
            "costo_mensual_unidad": l.price_list,
            "cantidad": l.qty,
            "costo_mensual_total": (l.price_list or 0) * (l.qty or 1),
        }
        for i, l in enumerate(esc.comodato_lines)
    ], columns=["N", "codigo", "nombre", "costo_mensual_unidad", "cantidad", "costo_mensual_total"])

    return {"Resumen": resumen, "Productos": productos, "Comodatos": comodatos}


def exportar_xlsx(esc: Escenario, totals: QuoteTotals, path: str, hoy: Optional[date] = None) -> str:
    hojas = tablas_xlsx(esc, totals, hoy)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for nombre, df in hojas.items():
            df.to_excel(writer, sheet_name=nombre, index=False)
    log_file_operation("export", path, rows_processed=len(totals.lines), hojas=list(hojas))
    return path


# ---------------------------
# estado persistido
# ---------------------------

def cargar_escenario(repo: EstadoRepo) -> Escenario:
    """Reconstruye el escenario desde el estado; valores corruptos se ignoran."""
    try:
        sale_lines = sale_lines_from_json(repo.get_json(keys.K_SALES, []))
    except ScenarioError:
        sale_lines = []
    try:
        com_lines = comodato_lines_from_json(repo.get_json(keys.K_COMODATO, []))
    except ScenarioError:
        com_lines = []
    params = QuoteParams(
        commission_pct=repo.get_float(keys.K_COMMISSION, DEFAULTS.commission_pct),
        months=int(repo.get_float(keys.K_MONTHS, DEFAULTS.months)),
        use_price_list_as_cost=bool(repo.get_json(keys.K_USE_LIST_AS_COST, DEFAULTS.use_price_list_as_cost)),
        commission_on_net=bool(repo.get_json(keys.K_COMMISSION_ON_NET, DEFAULTS.commission_on_net)),
        viability_threshold=repo.get_float(keys.K_VIABILITY, DEFAULTS.viability_threshold),
    )
    return Escenario(
        customer_name=str(repo.get_json(keys.K_CUSTOMER, "") or ""),
        client_rut=str(repo.get_json(keys.K_CLIENT_RUT, "") or ""),
        client_city=str(repo.get_json(keys.K_CLIENT_CITY, "") or ""),
        client_exec=str(repo.get_json(keys.K_CLIENT_EXEC, "") or ""),
        notes=str(repo.get_json(keys.K_NOTES, "") or ""),
        params=params,
        sale_lines=sale_lines,
        comodato_lines=com_lines,
    )


def guardar_escenario(repo: EstadoRepo, esc: Escenario) -> None:
    p = esc.params
    repo.set_many([
        (keys.K_SALES, [_line_to_json(l, _SALE_FIELDS) for l in esc.sale_lines]),
        (keys.K_COMODATO, [_line_to_json(l, _COM_FIELDS) for l in esc.comodato_lines]),
        (keys.K_COMMISSION, p.commission_pct),
        (keys.K_MONTHS, p.months),
        (keys.K_USE_LIST_AS_COST, p.use_price_list_as_cost),
        (keys.K_COMMISSION_ON_NET, p.commission_on_net),
        (keys.K_VIABILITY, p.viability_threshold),
        (keys.K_CUSTOMER, esc.customer_name),
        (keys.K_CLIENT_RUT, esc.client_rut),
        (keys.K_CLIENT_CITY, esc.client_city),
        (keys.K_CLIENT_EXEC, esc.client_exec),
        (keys.K_NOTES, esc.notes),
    ])


def aceptar(db_path: str = DB_PATH) -> int:
    """Acepta la evaluación: limpia líneas y datos del cliente, incrementa el N° de documento.

    Los parámetros y el ejecutivo se conservan para la siguiente evaluación.
    """
    repo = EstadoRepo(db_path)
    numero = int(repo.get_float(keys.K_DOC_NUMBER, 1)) + 1
    repo.set_many([
        (keys.K_SALES, []),
        (keys.K_COMODATO, []),
        (keys.K_CUSTOMER, ""),
        (keys.K_CLIENT_RUT, ""),
        (keys.K_CLIENT_CITY, ""),
        (keys.K_NOTES, ""),
        (keys.K_DOC_NUMBER, numero),
    ])
    log_transaction("aceptar_evaluacion", {}, result={"doc_number": numero})
    return numero


def cotizar_archivo(path: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Calcula la cotización de un escenario JSON contra el catálogo guardado."""
    esc = leer_escenario(path, base=cargar_escenario(EstadoRepo(db_path)))
    catalog = catalogo_guardado(db_path)
    totals = calcular(esc, catalog)
    return {"escenario": esc, "totals": totals, "catalog": catalog}
