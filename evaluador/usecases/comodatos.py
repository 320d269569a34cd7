# evaluador/usecases/comodatos.py
"""
UC: Evaluación de exposición de comodatos.

Carga la hoja de ventas y la de comodatos (en paralelo), calcula las
métricas por cliente y permite simular una solicitud de equipos nuevos.

Obs.:
- Ambas hojas se cargan como un solo snapshot: si cualquiera falla, el
  snapshot anterior queda intacto.
- Una carga más antigua que termina después de una más nueva se descarta.
"""
from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from dateutil.relativedelta import relativedelta

from evaluador.adapters.mapeos import ESQUEMA_CONTRATO, catalogo_para_comodatos, map_comodatos, map_ventas
from evaluador.adapters.parsers import to_number
from evaluador.adapters.sheets_loader import SnapshotSlot, load_table
from evaluador.config import DB_PATH, DEFAULT_COMODATOS_URL, DEFAULT_VENTAS_URL, DEFAULTS
from evaluador.domain.exposicion import (
    calcular_metricas,
    evaluar_solicitud,
    filtrar_metricas,
    top_productos,
)
from evaluador.domain.models import (
    ComodatoRow,
    EquipoCatalogo,
    EvaluacionSolicitud,
    Metric,
    SolicitudRow,
    TopProducto,
    VentasRow,
)
from evaluador.errors import EvaluadorError, ScenarioError
from evaluador.infra import repositories as keys
from evaluador.infra.logger import log_calculo, log_system_event, log_transaction
from evaluador.infra.repositories import EstadoRepo
from evaluador.usecases.catalogo import catalogo_guardado


@dataclass
class DatosExposicion:
    ventas: List[VentasRow] = field(default_factory=list)
    comodatos: List[ComodatoRow] = field(default_factory=list)
    esquema: str = ESQUEMA_CONTRATO
    origen: str = "hojas"


@dataclass
class ParamsExposicion:
    rel_max: float = DEFAULTS.rel_max
    contract_months: int = DEFAULTS.contract_months
    avg_mode: str = DEFAULTS.avg_mode
    key_type: str = DEFAULTS.key_type


# Último snapshot aplicado en este proceso
SNAPSHOT: SnapshotSlot[DatosExposicion] = SnapshotSlot()


def params_guardados(db_path: str = DB_PATH) -> ParamsExposicion:
    repo = EstadoRepo(db_path)
    return ParamsExposicion(
        rel_max=repo.get_float(keys.K_COM_REL_MAX, DEFAULTS.rel_max),
        contract_months=max(1, int(repo.get_float(keys.K_COM_CONTRACT_MONTHS, DEFAULTS.contract_months))),
        avg_mode=str(repo.get_json(keys.K_COM_AVG_MODE, DEFAULTS.avg_mode)),
        key_type=str(repo.get_json(keys.K_COM_FILTRO_TIPO, DEFAULTS.key_type)),
    )


def urls_guardadas(db_path: str = DB_PATH) -> Dict[str, str]:
    repo = EstadoRepo(db_path)
    return {
        "ventas": repo.get_json(keys.K_COM_VENTAS_URL, DEFAULT_VENTAS_URL) or DEFAULT_VENTAS_URL,
        "comodatos": repo.get_json(keys.K_COM_COMODATOS_URL, DEFAULT_COMODATOS_URL) or DEFAULT_COMODATOS_URL,
    }


def cargar_datos(
    ventas_source: str,
    comodatos_source: str,
    hoy: Optional[date] = None,
    slot: SnapshotSlot[DatosExposicion] = SNAPSHOT,
) -> DatosExposicion:
    """Carga ambas hojas en paralelo y publica el snapshot resultante.

    Raises:
        SheetLoadError / OSError / ValueError: si alguna fuente falla; el
            snapshot previo no se toca.
    """
    hoy = hoy or date.today()
    ticket = slot.begin()
    log_system_event("comodatos_carga_inicio", {"ventas": ventas_source, "comodatos": comodatos_source, "ticket": ticket})
    try:
        with ThreadPoolExecutor(max_workers=2) as pool:
            f_ventas = pool.submit(load_table, ventas_source)
            f_comodatos = pool.submit(load_table, comodatos_source)
            ventas_recs = f_ventas.result()
            comodatos_recs = f_comodatos.result()
    except (EvaluadorError, OSError, ValueError) as e:
        log_transaction("cargar_comodatos", {"ticket": ticket}, error=str(e))
        raise

    esquema, comodatos = map_comodatos(comodatos_recs, hoy)
    datos = DatosExposicion(ventas=map_ventas(ventas_recs), comodatos=comodatos, esquema=esquema)
    aplicado = slot.apply(ticket, datos)
    log_transaction(
        "cargar_comodatos",
        {"ticket": ticket},
        result={"ventas": len(datos.ventas), "comodatos": len(datos.comodatos), "esquema": esquema, "aplicado": aplicado},
    )
    return slot.value if not aplicado and slot.value is not None else datos


def datos_demo(hoy: Optional[date] = None) -> DatosExposicion:
    """Dos clientes de ejemplo con ventas recientes y equipos instalados."""
    hoy = hoy or date.today()

    def d(meses: int) -> date:
        return date(hoy.year, hoy.month, 15) - relativedelta(months=meses)

    ventas = [
        VentasRow(rut="76.123.456-7", sn="PT-001", fecha=d(1), monto=900000, cliente="Cliente A", qty=10),
        VentasRow(rut="76.123.456-7", sn="PT-001", fecha=d(2), monto=950000, cliente="Cliente A", qty=12),
        VentasRow(rut="76.123.456-7", sn="PT-002", fecha=d(3), monto=800000, cliente="Cliente A", qty=8),
        VentasRow(rut="99.888.777-6", sn="PT-100", fecha=d(1), monto=400000, cliente="Cliente B", qty=5),
        VentasRow(rut="99.888.777-6", sn="PT-100", fecha=d(2), monto=420000, cliente="Cliente B", qty=7),
        VentasRow(rut="99.888.777-6", sn="PT-101", fecha=d(3), monto=0, cliente="Cliente B", qty=0),
    ]
    comodatos = [
        ComodatoRow(rut="76.123.456-7", sn="SN-001", fecha_instalacion=d(10), meses_contrato=24, costo_total=12000000, cliente="Cliente A"),
        ComodatoRow(rut="76.123.456-7", sn="SN-002", fecha_instalacion=d(5), meses_contrato=18, costo_total=6000000, cliente="Cliente A"),
        ComodatoRow(rut="99.888.777-6", sn="SN-100", fecha_instalacion=d(20), meses_contrato=24, costo_total=9600000, cliente="Cliente B"),
        ComodatoRow(rut="99.888.777-6", sn="SN-101", fecha_instalacion=d(25), meses_contrato=12, costo_total=4800000, cliente="Cliente B"),
    ]
    return DatosExposicion(ventas=ventas, comodatos=comodatos, esquema=ESQUEMA_CONTRATO, origen="demo")


def metricas(
    datos: DatosExposicion,
    params: ParamsExposicion,
    hoy: Optional[date] = None,
    query: str = "",
    filtro_por: str = "RUT",
) -> List[Metric]:
    """Métricas de clientes vigentes, filtradas."""
    hoy = hoy or date.today()
    todas = calcular_metricas(
        datos.ventas,
        datos.comodatos,
        hoy,
        tipo=params.key_type,
        avg_mode=params.avg_mode,
        contract_months_default=params.contract_months,
    )
    out = filtrar_metricas(todas, query, filtro_por)
    log_calculo("exposicion", claves=len(todas), vigentes=len(out), esquema=datos.esquema, origen=datos.origen)
    return out


# ---------------------------
# solicitud de equipos nuevos
# ---------------------------

def solicitud_desde_json(items: Any, equipos: Mapping[str, EquipoCatalogo]) -> List[SolicitudRow]:
    """Filas de solicitud desde JSON; completa nombre y valor desde el catálogo.

    Raises:
        ScenarioError: estructura inválida.
    """
    if isinstance(items, dict):
        items = items.get("rows", items.get("solicitud"))
    if not isinstance(items, list):
        raise ScenarioError("La solicitud debe ser una lista de equipos")
    out: List[SolicitudRow] = []
    for i, o in enumerate(items):
        if not isinstance(o, dict):
            raise ScenarioError(f"solicitud[{i}]: se esperaba un objeto")
        code = str(o.get("code") or "").strip().upper()
        eq = equipos.get(code)
        valor = to_number(o.get("valorUnit"))
        if valor is None and eq is not None:
            valor = eq.precio
        meses = to_number(o.get("meses"))
        out.append(SolicitudRow(
            code=code,
            name=str(o.get("name") or (eq.name if eq else "")),
            qty=to_number(o.get("qty"), 1.0),
            meses=int(meses) if meses else None,
            valor_unit=valor,
            costo_mensual=to_number(o.get("costoMensual")),
        ))
    return out


def evaluar_solicitud_archivo(
    metric: Metric,
    path: str,
    params: ParamsExposicion,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except ValueError as e:
            raise ScenarioError(f"JSON inválido: {e}") from e
    equipos = catalogo_para_comodatos(catalogo_guardado(db_path))
    filas = solicitud_desde_json(data, equipos)
    ev: EvaluacionSolicitud = evaluar_solicitud(metric, filas, params.rel_max, params.contract_months)
    log_calculo("solicitud", key=metric.key, filas=len(filas), relacion_nueva=ev.relacion_nueva, viable=ev.viable)
    return {"filas": filas, "evaluacion": ev}


def top_productos_cliente(datos: DatosExposicion, rut: str, hoy: Optional[date] = None) -> List[TopProducto]:
    return top_productos(datos.ventas, rut, hoy or date.today())
