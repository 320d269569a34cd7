"""
Políticas y reglas de negocio del evaluador.

Este módulo agrupa las reglas pequeñas que deciden cómo se interpretan
los datos ingresados (descuentos fuera de rango, líneas incompletas,
meses de contrato inválidos) y cómo se clasifica un resultado como
viable. Las usan tanto el motor de cotización como el de exposición.
"""

from __future__ import annotations

from typing import Optional, Tuple

from evaluador.domain.models import Metric, SaleLine


def clamp_discount(discount: Optional[float]) -> float:
    """Acota el descuento de una línea a ``[0, 1]``.

    ``None`` o ``0`` significan sin descuento.
    """
    if not discount:
        return 0.0
    try:
        d = float(discount)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, d))


def linea_incompleta(line: SaleLine) -> bool:
    """Marca (sin rechazar) una línea a la que le faltan datos.

    Falta el código, la cantidad es cero/vacía o no hay precio de venta.
    """
    return (line.sell_price is None) or (not line.qty) or (not (line.code or "").strip())


def meses_base(meses_contrato: Optional[float], default_meses: Optional[float]) -> int:
    """Meses a usar como divisor de un costo total.

    Usa los meses del contrato si son positivos; si no, el default
    configurado; y en último caso 1. Nunca devuelve menos de 1.
    """
    if meses_contrato and meses_contrato > 0:
        return int(meses_contrato)
    if default_meses and default_meses > 0:
        return int(default_meses)
    return 1


def es_viable_margen(final_margin_pct: float, threshold: float) -> bool:
    """Cotización viable si el margen final alcanza el umbral (inclusive)."""
    return final_margin_pct >= threshold


def es_viable_relacion(relacion: float, rel_max: float, inclusivo: bool = True) -> bool:
    """Exposición viable si la relación comodato/venta no supera el máximo.

    Con ``inclusivo=True`` una relación exactamente igual al máximo es
    viable; con ``inclusivo=False`` debe quedar estrictamente por debajo.
    """
    if inclusivo:
        return relacion <= rel_max
    return relacion < rel_max


def orden_reporte(m: Metric) -> Tuple[int, float]:
    """Clave de orden: vigentes primero, luego mayor relación."""
    return (0 if m.vigente else 1, -m.relacion)
