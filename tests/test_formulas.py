import pytest

from evaluador.domain.formulas import (
    allocate_loan,
    commission,
    compute_quote,
    effective_kilos,
    effective_unit_cost,
    loan_totals,
    lookup,
)
from evaluador.domain.models import CatalogItem, ComodatoLine, QuoteParams, SaleLine
from evaluador.domain.policies import clamp_discount, es_viable_margen, linea_incompleta


CATALOG = {
    "A": CatalogItem(code="A", name="Detergente", price_list=700.0, cost=600.0, kilos=5.0),
    "B": CatalogItem(code="B", name="Desengrasante", price_list=1200.0),
}


def _line(**kw) -> SaleLine:
    base = dict(code="A", name="", price_list=0.0, kilos=2.0, qty=10.0, sell_price=1000.0, discount_pct=0.1)
    base.update(kw)
    return SaleLine(**base)


def test_single_line_metrics():
    totals = compute_quote([_line()], [], CATALOG, QuoteParams())
    [r] = totals.lines
    assert r.kilos_mes == pytest.approx(20.0)
    assert r.price_sale_kg == pytest.approx(900.0)
    assert r.venta == pytest.approx(18000.0)
    assert r.costo_kg == pytest.approx(600.0)
    assert r.margen_bruto == pytest.approx(6000.0)
    assert r.asig_comodato == 0.0
    assert r.margen_final == pytest.approx(6000.0)
    assert not r.incompleta


def test_loan_allocation_proportional_to_revenue():
    lines = [_line(), _line(code="B", kilos=1.0, qty=1.0, sell_price=2000.0, discount_pct=0.0, cost_override=1500.0)]
    comodato = [ComodatoLine(code="EQ", name="Dosificador", price_list=12000.0, qty=1.0)]
    params = QuoteParams(commission_pct=0.05, months=12, commission_on_net=True)
    totals = compute_quote(lines, comodato, CATALOG, params)

    r1, r2 = totals.lines
    assert totals.ventas_tot == pytest.approx(20000.0)
    assert totals.comodato_total_equipos == pytest.approx(12000.0)
    assert totals.comodato_mensual == pytest.approx(1000.0)
    assert r1.asig_comodato == pytest.approx(900.0)
    assert r2.asig_comodato == pytest.approx(100.0)
    assert r1.asig_comodato + r2.asig_comodato == pytest.approx(totals.comodato_mensual)

    # comisión sobre venta neta de comodato
    assert r1.comision == pytest.approx(0.05 * (18000.0 - 900.0))
    assert r1.margen_final == pytest.approx(6000.0 - 900.0 - 855.0)
    assert r2.margen_bruto == pytest.approx(500.0)
    assert totals.rel_com_vta == pytest.approx(1000.0 / 20000.0)
    assert totals.margen_final_tot == pytest.approx(r1.margen_final + r2.margen_final)
    assert totals.final_margin_pct == pytest.approx(totals.margen_final_tot / 20000.0)
    assert totals.effective_commission_pct == pytest.approx(totals.commission_total / 20000.0)


def test_commission_on_gross_revenue():
    lines = [_line()]
    comodato = [ComodatoLine(code="EQ", price_list=12000.0, qty=1.0)]
    totals = compute_quote(lines, comodato, CATALOG, QuoteParams(commission_pct=0.1, months=12, commission_on_net=False))
    assert totals.lines[0].comision == pytest.approx(1800.0)


def test_recompute_is_idempotent():
    lines = [_line(), _line(code="B", qty=3.0)]
    comodato = [ComodatoLine(code="EQ", price_list=5000.0, qty=2.0)]
    params = QuoteParams(commission_pct=0.03)
    assert compute_quote(lines, comodato, CATALOG, params) == compute_quote(lines, comodato, CATALOG, params)


def test_zero_revenue_has_no_division_errors():
    lines = [_line(sell_price=0.0), _line(qty=0.0)]
    comodato = [ComodatoLine(code="EQ", price_list=12000.0, qty=1.0)]
    totals = compute_quote(lines, comodato, CATALOG, QuoteParams())
    assert totals.ventas_tot == 0.0
    assert totals.rel_com_vta == 0.0
    assert totals.final_margin_pct == 0.0
    assert all(r.asig_comodato == 0.0 for r in totals.lines)
    assert all(r.margen_final_pct == 0.0 for r in totals.lines)
    assert not totals.viable


def test_empty_quote():
    totals = compute_quote([], [], {}, QuoteParams())
    assert totals.lines == []
    assert totals.ventas_tot == 0.0
    assert totals.comodato_mensual == 0.0


def test_viability_threshold_is_inclusive():
    assert es_viable_margen(0.5, 0.5)
    assert not es_viable_margen(0.4999, 0.5)


def test_effective_kilos_fallbacks():
    assert effective_kilos(_line(kilos=3.0), CATALOG["A"]) == 3.0
    assert effective_kilos(_line(kilos=0.0), CATALOG["A"]) == 5.0
    assert effective_kilos(_line(kilos=0.0), CATALOG["B"]) == 1.0
    assert effective_kilos(_line(kilos=0.0), None) == 1.0


def test_effective_unit_cost_priority():
    assert effective_unit_cost(_line(cost_override=10.0), CATALOG["A"], True) == 10.0
    assert effective_unit_cost(_line(), CATALOG["A"], True) == 600.0
    assert effective_unit_cost(_line(code="B"), CATALOG["B"], True) == 1200.0
    assert effective_unit_cost(_line(code="B"), CATALOG["B"], False) == 0.0
    assert effective_unit_cost(_line(code="Z"), None, True) == 0.0


def test_loan_totals_qty_zero_counts_as_one_and_months_guard():
    lines = [ComodatoLine(price_list=1000.0, qty=0.0), ComodatoLine(price_list=500.0, qty=2.0)]
    assert loan_totals(lines, 10) == (2000.0, 200.0)
    assert loan_totals(lines, 0) == (2000.0, 2000.0)


def test_allocate_and_commission_helpers():
    assert allocate_loan(500.0, 0.0, 1000.0) == 0.0
    assert allocate_loan(250.0, 1000.0, 400.0) == pytest.approx(100.0)
    # la base neta nunca es negativa
    assert commission(100.0, 300.0, 0.1, True) == 0.0
    assert commission(100.0, 30.0, 0.1, False) == pytest.approx(10.0)


def test_lookup_is_case_insensitive():
    assert lookup(CATALOG, " a ") is CATALOG["A"]
    assert lookup(CATALOG, "") is None
    assert lookup(CATALOG, None) is None


def test_discount_is_clamped():
    assert clamp_discount(None) == 0.0
    assert clamp_discount(-0.2) == 0.0
    assert clamp_discount(1.7) == 1.0
    totals = compute_quote([_line(discount_pct=1.5)], [], CATALOG, QuoteParams())
    assert totals.lines[0].venta == 0.0


def test_incomplete_line_flag():
    assert linea_incompleta(_line(code=""))
    assert linea_incompleta(_line(qty=0.0))
    assert linea_incompleta(_line(sell_price=None))
    assert not linea_incompleta(_line())
