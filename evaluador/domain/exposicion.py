# evaluador/domain/exposicion.py
"""
Motor de exposición de comodatos.

Cruza la venta histórica de cada cliente con los equipos que tiene en
comodato y calcula, por clave (RUT o SN):

- venta de los últimos 6 meses (total y promedio mensual) y de 24 meses;
- cuota mensual de los equipos vigentes y obligación restante;
- relación cuota mensual / venta mensual promedio (señal de viabilidad).

"Hoy" siempre entra como parámetro: ninguna función lee el reloj.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from evaluador.domain.models import (
    ComodatoRow,
    EquipoDetalle,
    EvaluacionSolicitud,
    Metric,
    SolicitudRow,
    TopProducto,
    VentasRow,
)
from evaluador.domain.policies import es_viable_relacion, meses_base, orden_reporte

AVG_SALES_MONTHS = "salesMonths"
AVG_CALENDAR6 = "calendar6"
AVG_MODES = (AVG_SALES_MONTHS, AVG_CALENDAR6)

KEY_RUT = "RUT"
KEY_SN = "SN"
KEY_TYPES = (KEY_RUT, KEY_SN)


# ----------------------
# aritmética de meses
# ----------------------

def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def months_ago(hoy: date, n: int) -> date:
    """Mismo día ``n`` meses atrás (acotado al último día del mes)."""
    return hoy - relativedelta(months=n)


def month_diff(desde: date, hasta: date) -> int:
    """Meses completos transcurridos entre dos fechas (nunca negativo).

    El día del mes decide el redondeo: del 15/01 al 14/03 hay 1 mes, del
    15/01 al 15/03 hay 2.
    """
    total = (hasta.year - desde.year) * 12 + (hasta.month - desde.month)
    if hasta.day < desde.day:
        total -= 1
    return max(0, total)


def count_month_overlap_inclusive(inicio: date, meses: int, ventana_ini: date, ventana_fin: date) -> int:
    """Meses calendario comunes entre un contrato y una ventana.

    El contrato cubre ``[inicio, inicio + meses - 1]`` y la ventana
    ``[ventana_ini, ventana_fin]``; ambos se truncan al mes y los extremos
    son inclusivos.
    """
    if meses <= 0:
        return 0
    c_ini = month_start(inicio)
    c_fin = c_ini + relativedelta(months=meses - 1)
    s = max(c_ini, month_start(ventana_ini))
    e = min(c_fin, month_start(ventana_fin))
    if e < s:
        return 0
    return (e.year - s.year) * 12 + (e.month - s.month) + 1


# ----------------------
# equipos
# ----------------------

def costo_mensual_equipo(c: ComodatoRow, contract_months_default: int) -> float:
    """Cuota mensual declarada o costo total / meses de contrato."""
    if c.costo_mensual is not None:
        return float(c.costo_mensual or 0.0)
    return float(c.costo_total or 0.0) / meses_base(c.meses_contrato, contract_months_default)


def equipo_detalle(c: ComodatoRow, hoy: date, contract_months_default: int) -> EquipoDetalle:
    transcurridos = month_diff(c.fecha_instalacion, hoy)
    return EquipoDetalle(
        sn=c.sn,
        fecha_inst=c.fecha_instalacion,
        meses_contrato=meses_base(c.meses_contrato, contract_months_default),
        meses_transcurridos=transcurridos,
        meses_restantes=max(0, int(c.meses_contrato or 0) - transcurridos),
        costo_mensual=costo_mensual_equipo(c, contract_months_default),
    )


def _key(tipo: str, rut: str, sn: Optional[str]) -> str:
    return (rut if tipo == KEY_RUT else (sn or "")).strip()


# ----------------------
# métricas
# ----------------------

def calcular_metricas(
    ventas: Sequence[VentasRow],
    comodatos: Sequence[ComodatoRow],
    hoy: date,
    tipo: str = KEY_RUT,
    avg_mode: str = AVG_SALES_MONTHS,
    contract_months_default: int = 24,
) -> List[Metric]:
    """Calcula las métricas por clave y las devuelve ordenadas para reporte."""
    if avg_mode not in AVG_MODES:
        raise ValueError(f"avg_mode debe ser uno de {AVG_MODES}")
    if not ventas and not comodatos:
        return []

    six_ago = months_ago(hoy, 6)
    two_years_ago = month_start(months_ago(hoy, 24))

    s6_total: Dict[str, float] = defaultdict(float)
    s6_months: Dict[str, set] = defaultdict(set)
    s24_total: Dict[str, float] = defaultdict(float)
    nombres: Dict[str, str] = {}

    for v in ventas:
        k = _key(tipo, v.rut, v.sn)
        if not k or v.fecha > hoy:
            continue
        if v.fecha >= six_ago:
            s6_total[k] += v.monto or 0.0
            s6_months[k].add((v.fecha.year, v.fecha.month))
        if v.fecha >= two_years_ago:
            s24_total[k] += v.monto or 0.0
        if v.cliente and k not in nombres and v.fecha >= two_years_ago:
            nombres[k] = v.cliente

    equipos: Dict[str, List[EquipoDetalle]] = defaultdict(list)
    historico: Dict[str, float] = defaultdict(float)
    entregado: Dict[str, float] = defaultdict(float)
    clientes_com: Dict[str, str] = {}

    for c in comodatos:
        k = _key(tipo, c.rut, c.sn)
        if not k:
            continue
        det = equipo_detalle(c, hoy, contract_months_default)
        equipos[k].append(det)
        if c.cliente and k not in clientes_com:
            clientes_com[k] = c.cliente
        overlap = count_month_overlap_inclusive(c.fecha_instalacion, det.meses_contrato, two_years_ago, hoy)
        historico[k] += det.costo_mensual * overlap
        if c.origen == "salida":
            entregado[k] += c.entregado_24m or 0.0

    keys = list(dict.fromkeys(list(s6_total) + list(s24_total) + list(equipos)))
    out: List[Metric] = []
    for k in keys:
        total6 = s6_total.get(k, 0.0)
        if k not in s6_total:
            prom6 = 0.0
        elif avg_mode == AVG_CALENDAR6:
            prom6 = total6 / 6
        else:
            n = len(s6_months[k])
            prom6 = total6 / n if n else 0.0
        detalle = equipos.get(k, [])
        vigentes = [e for e in detalle if e.vigente]
        mensual_vig = sum(e.costo_mensual for e in vigentes)
        out.append(Metric(
            key=k,
            cliente=clientes_com.get(k) or nombres.get(k),
            ventas_6m_total=total6,
            ventas_6m_prom=prom6,
            ventas_24m_total=s24_total.get(k, 0.0),
            comodato_mensual_vigente=mensual_vig,
            comodato_24m_total=sum(e.costo_mensual * e.meses_restantes for e in vigentes),
            comodato_24m_historico=historico.get(k, 0.0),
            relacion=relacion_exposicion(mensual_vig, prom6),
            vigente=bool(vigentes),
            equipos_vigentes=len(vigentes),
            detalle=list(detalle),
            entregado_24m=entregado.get(k, 0.0),
        ))

    out.sort(key=orden_reporte)
    return out


def relacion_exposicion(cuota_mensual: float, venta_mensual_prom: float) -> float:
    """Cuota mensual de comodato / venta mensual promedio (0 sin venta)."""
    if venta_mensual_prom <= 0:
        return 0.0
    return cuota_mensual / venta_mensual_prom


def filtrar_metricas(metrics: Iterable[Metric], query: str = "", por: str = "RUT") -> List[Metric]:
    """Solo clientes con equipos vigentes, filtrados por clave o por nombre."""
    q = (query or "").strip().lower()
    base = [m for m in metrics if m.vigente]
    if not q:
        return base
    if por.upper() == "RUT":
        return [m for m in base if q in m.key.lower()]
    return [m for m in base if q in (m.cliente or "").lower()]


# ----------------------
# simulación de nuevos equipos
# ----------------------

def cuota_mensual_solicitud(r: SolicitudRow, contract_months_default: int) -> float:
    """Cuota mensual de una fila de solicitud.

    Con override mensual: override * cantidad. Si no, valor unitario *
    cantidad / meses. Cantidad y meses nunca bajan de 1.
    """
    qty = max(1.0, float(r.qty or 1))
    meses = max(1, int(r.meses or contract_months_default or 1))
    if r.costo_mensual:
        return float(r.costo_mensual) * qty
    return float(r.valor_unit or 0.0) * qty / meses


def evaluar_solicitud(
    metric: Metric,
    solicitud: Sequence[SolicitudRow],
    rel_max: float,
    contract_months_default: int = 24,
    inclusivo: bool = True,
) -> EvaluacionSolicitud:
    cuota_sim = sum(cuota_mensual_solicitud(r, contract_months_default) for r in solicitud)
    cuota_nueva = metric.comodato_mensual_vigente + cuota_sim
    relacion_nueva = relacion_exposicion(cuota_nueva, metric.ventas_6m_prom)
    return EvaluacionSolicitud(
        cuota_simulada=cuota_sim,
        cuota_nueva=cuota_nueva,
        relacion_nueva=relacion_nueva,
        viable=es_viable_relacion(relacion_nueva, rel_max, inclusivo=inclusivo),
    )


# ----------------------
# top de productos
# ----------------------

def top_productos(ventas: Sequence[VentasRow], rut: str, hoy: date, prefijo: str = "PT", limite: int = 10) -> List[TopProducto]:
    """Productos más vendidos a un RUT en los últimos 6 meses.

    Kilos y venta se promedian sobre 6 meses calendario (incluye meses sin
    venta); el precio por kilo es el global del periodo.
    """
    rut = (rut or "").strip()
    if not rut:
        return []
    six_ago = months_ago(hoy, 6)
    acc: Dict[str, Dict] = {}
    for v in ventas:
        if v.rut != rut or v.fecha < six_ago or v.fecha > hoy:
            continue
        code = (v.sn or "").upper()
        if not code.startswith(prefijo):
            continue
        rec = acc.setdefault(code, {"name": v.prod_name, "kilos": 0.0, "revenue": 0.0})
        rec["kilos"] += v.kilos or 0.0
        rec["revenue"] += v.monto or 0.0
        if not rec["name"] and v.prod_name:
            rec["name"] = v.prod_name

    out = [
        TopProducto(
            sn=sn,
            name=a["name"],
            total_kilos=a["kilos"] / 6,
            price_venta_kg=a["revenue"] / a["kilos"] if a["kilos"] > 0 else 0.0,
            total=a["revenue"] / 6,
        )
        for sn, a in acc.items()
    ]
    out.sort(key=lambda t: t.total, reverse=True)
    return out[:limite]
