# evaluador/domain/models.py
"""
Modelos (dataclasses) del dominio.

Observación:
- Las hojas se cargan como diccionarios; las dataclasses son la forma ya
  normalizada con la que trabajan los motores de cálculo.
- Los resultados (líneas calculadas, métricas) son derivados: se recalculan
  completos en cada cambio de entrada y nunca se guardan por separado.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


# -------------------------
# Catálogo
# -------------------------

@dataclass(frozen=True)
class CatalogItem:
    """Ítem del catálogo indexado por código (siempre en mayúsculas)."""
    code: str
    name: str = ""
    price_list: float = 0.0            # $/kg o costo mensual del equipo
    cost: Optional[float] = None       # $/kg; None = sin dato
    kilos: Optional[float] = None      # kg por presentación; None = sin dato


@dataclass(frozen=True)
class EquipoCatalogo:
    """Vista de catálogo para la evaluación de nuevos comodatos."""
    code: str
    name: str = ""
    precio: float = 0.0
    costo_mensual: Optional[float] = None


# -------------------------
# Cotización
# -------------------------

@dataclass
class QuoteParams:
    """Parámetros globales de la cotización."""
    commission_pct: float = 0.0
    months: int = 12
    use_price_list_as_cost: bool = True
    commission_on_net: bool = True
    viability_threshold: float = 0.5


@dataclass
class SaleLine:
    """Línea de producto de la propuesta."""
    code: str = ""
    name: str = ""
    price_list: float = 0.0                 # snapshot del catálogo, solo lectura
    kilos: float = 1.0                      # kg por presentación
    qty: float = 1.0                        # presentaciones por mes
    sell_price: Optional[float] = 0.0       # $/kg
    discount_pct: Optional[float] = 0.0     # 0..1
    cost_override: Optional[float] = None   # $/kg


@dataclass
class ComodatoLine:
    """Equipo en comodato de la propuesta."""
    code: str = ""
    name: str = ""
    price_list: float = 0.0     # costo del equipo (se amortiza en `months`)
    qty: float = 1.0


@dataclass(frozen=True)
class QuoteLineResult:
    line: SaleLine
    kilos_mes: float
    price_sale_kg: float
    venta: float
    costo_kg: float
    margen_bruto: float
    asig_comodato: float
    comision: float
    margen_final: float
    margen_final_pct: float
    incompleta: bool


@dataclass(frozen=True)
class QuoteTotals:
    lines: List[QuoteLineResult]
    ventas_tot: float
    comodato_total_equipos: float
    comodato_mensual: float
    rel_com_vta: float
    margen_final_tot: float
    final_margin_pct: float
    commission_total: float
    effective_commission_pct: float
    viable: bool


# -------------------------
# Exposición de comodatos
# -------------------------

@dataclass(frozen=True)
class VentasRow:
    """Una línea histórica de venta."""
    rut: str
    fecha: date
    monto: float
    sn: Optional[str] = None
    qty: float = 0.0
    kilos: float = 0.0
    cliente: Optional[str] = None
    prod_name: Optional[str] = None


@dataclass(frozen=True)
class ComodatoRow:
    """Registro de equipo en comodato.

    ``origen`` marca el esquema de la hoja de donde salió: ``'contrato'``
    (fecha de instalación + meses de contrato) o ``'salida'`` (derivado de
    transacciones; ``entregado_24m`` trae el total entregado del par).
    """
    rut: str
    fecha_instalacion: date
    meses_contrato: int
    origen: str = "contrato"
    sn: Optional[str] = None
    costo_total: Optional[float] = None
    costo_mensual: Optional[float] = None
    cliente: Optional[str] = None
    entregado_24m: float = 0.0


@dataclass(frozen=True)
class EquipoDetalle:
    sn: Optional[str]
    fecha_inst: date
    meses_contrato: int
    meses_transcurridos: int
    meses_restantes: int
    costo_mensual: float

    @property
    def vigente(self) -> bool:
        return self.meses_restantes > 0


@dataclass
class Metric:
    """Agregado por clave de cliente (RUT o SN)."""
    key: str
    cliente: Optional[str] = None
    ventas_6m_total: float = 0.0
    ventas_6m_prom: float = 0.0
    ventas_24m_total: float = 0.0
    comodato_mensual_vigente: float = 0.0
    comodato_24m_total: float = 0.0       # obligación restante de equipos vigentes
    comodato_24m_historico: float = 0.0   # costo dentro de la ventana de 24 meses
    relacion: float = 0.0
    vigente: bool = False
    equipos_vigentes: int = 0
    detalle: List[EquipoDetalle] = field(default_factory=list)
    entregado_24m: float = 0.0


@dataclass
class SolicitudRow:
    """Equipo nuevo solicitado, para simular la exposición resultante."""
    code: str = ""
    name: str = ""
    qty: float = 1.0
    meses: Optional[int] = None
    valor_unit: Optional[float] = None     # $ del equipo unitario
    costo_mensual: Optional[float] = None  # override mensual por unidad


@dataclass(frozen=True)
class EvaluacionSolicitud:
    cuota_simulada: float
    cuota_nueva: float
    relacion_nueva: float
    viable: bool


@dataclass(frozen=True)
class TopProducto:
    sn: str
    name: Optional[str]
    total_kilos: float       # promedio mensual
    price_venta_kg: float
    total: float             # promedio mensual
