"""
Quote line formulas.

These functions implement the spreadsheet arithmetic behind a business
proposal: per-line revenue and gross margin, monthly amortization of the
loaned equipment, allocation of that cost across lines proportionally to
revenue, commission and final margin.

All functions are pure: they depend solely on their inputs and do not
modify any external state. `compute_quote` rebuilds every derived figure
from scratch, so calling it twice with the same inputs yields identical
results.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from evaluador.domain.models import (
    CatalogItem,
    ComodatoLine,
    QuoteLineResult,
    QuoteParams,
    QuoteTotals,
    SaleLine,
)
from evaluador.domain.policies import clamp_discount, es_viable_margen, linea_incompleta


def lookup(catalog: Mapping[str, CatalogItem], code: Optional[str]) -> Optional[CatalogItem]:
    """Catalog lookup by code, ignoring case and surrounding blanks."""
    if not code:
        return None
    return catalog.get(code.strip().upper())


def effective_kilos(line: SaleLine, item: Optional[CatalogItem]) -> float:
    """Unit size: the line's kilos, else the catalog's, else 1."""
    if line.kilos:
        return float(line.kilos)
    if item is not None and item.kilos:
        return float(item.kilos)
    return 1.0


def effective_unit_cost(line: SaleLine, item: Optional[CatalogItem], use_price_list_as_cost: bool) -> float:
    """Unit cost used for the gross margin.

    Priority: the line's cost override, the catalog cost, and finally the
    catalog list price (only when `use_price_list_as_cost`) or zero.
    """
    if line.cost_override is not None:
        return float(line.cost_override)
    if item is not None and item.cost is not None:
        return float(item.cost)
    if use_price_list_as_cost and item is not None:
        return float(item.price_list or 0.0)
    return 0.0


def loan_totals(comodato_lines: Sequence[ComodatoLine], months: int) -> Tuple[float, float]:
    """Return (total equipment cost, monthly amortization).

    A line without quantity counts as one unit. With `months <= 0` the
    monthly figure is the undivided total.
    """
    total = sum((l.price_list or 0.0) * (l.qty or 1) for l in comodato_lines)
    mensual = total / months if months and months > 0 else total
    return float(total), float(mensual)


def allocate_loan(venta: float, ventas_tot: float, comodato_mensual: float) -> float:
    """Share of the monthly loan cost carried by a line, by revenue weight."""
    if ventas_tot <= 0:
        return 0.0
    return (venta / ventas_tot) * comodato_mensual


def commission(venta: float, asig_comodato: float, commission_pct: float, on_net: bool) -> float:
    """Commission over raw revenue, or over revenue net of loan cost (floored at 0)."""
    base = max(0.0, venta - asig_comodato) if on_net else venta
    return commission_pct * base


def compute_quote(
    sale_lines: Sequence[SaleLine],
    comodato_lines: Sequence[ComodatoLine],
    catalog: Mapping[str, CatalogItem],
    params: QuoteParams,
) -> QuoteTotals:
    """Recompute every per-line and quote-level figure."""
    base: List[Dict] = []
    for l in sale_lines:
        item = lookup(catalog, l.code)
        kilos_mes = (l.qty or 0) * effective_kilos(l, item)
        price_sale_kg = (l.sell_price or 0.0) * (1 - clamp_discount(l.discount_pct))
        venta = price_sale_kg * kilos_mes
        costo_kg = effective_unit_cost(l, item, params.use_price_list_as_cost)
        base.append({
            "line": l,
            "kilos_mes": kilos_mes,
            "price_sale_kg": price_sale_kg,
            "venta": venta,
            "costo_kg": costo_kg,
            "margen_bruto": (price_sale_kg - costo_kg) * kilos_mes,
        })

    ventas_tot = sum(r["venta"] for r in base)
    comodato_total, comodato_mensual = loan_totals(comodato_lines, params.months)
    rel_com_vta = comodato_mensual / ventas_tot if ventas_tot > 0 else 0.0

    lines: List[QuoteLineResult] = []
    for r in base:
        asig = allocate_loan(r["venta"], ventas_tot, comodato_mensual)
        com = commission(r["venta"], asig, params.commission_pct, params.commission_on_net)
        margen_final = r["margen_bruto"] - asig - com
        lines.append(QuoteLineResult(
            line=r["line"],
            kilos_mes=r["kilos_mes"],
            price_sale_kg=r["price_sale_kg"],
            venta=r["venta"],
            costo_kg=r["costo_kg"],
            margen_bruto=r["margen_bruto"],
            asig_comodato=asig,
            comision=com,
            margen_final=margen_final,
            margen_final_pct=margen_final / r["venta"] if r["venta"] > 0 else 0.0,
            incompleta=linea_incompleta(r["line"]),
        ))

    margen_final_tot = sum(r.margen_final for r in lines)
    final_margin_pct = margen_final_tot / ventas_tot if ventas_tot > 0 else 0.0
    commission_total = sum(r.comision for r in lines)

    return QuoteTotals(
        lines=lines,
        ventas_tot=ventas_tot,
        comodato_total_equipos=comodato_total,
        comodato_mensual=comodato_mensual,
        rel_com_vta=rel_com_vta,
        margen_final_tot=margen_final_tot,
        final_margin_pct=final_margin_pct,
        commission_total=commission_total,
        effective_commission_pct=commission_total / ventas_tot if ventas_tot > 0 else 0.0,
        viable=es_viable_margen(final_margin_pct, params.viability_threshold),
    )
