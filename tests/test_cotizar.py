"""
Tests del caso de uso de cotización: líneas, escenario JSON, planilla,
estado persistido y aceptación.
"""

import json
from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from evaluador.domain.models import CatalogItem, QuoteParams
from evaluador.errors import ScenarioError
from evaluador.infra.migrations import apply_migrations
from evaluador.infra.repositories import K_DOC_NUMBER, EstadoRepo
from evaluador.usecases.catalogo import catalogo_guardado, guardar_catalogo
from evaluador.usecases.cotizar import (
    Escenario,
    aceptar,
    calcular,
    cargar_escenario,
    cotizar_archivo,
    duplicar_linea,
    exportar_escenario,
    exportar_xlsx,
    guardar_escenario,
    importar_escenario,
    importar_escenario_archivo,
    nueva_linea_comodato,
    nueva_linea_venta,
    quitar_linea,
    sale_lines_from_json,
    seleccionar_codigo,
    seleccionar_codigo_comodato,
)

CATALOG = {
    "A": CatalogItem(code="A", name="Detergente", price_list=700.0, cost=600.0, kilos=2.0),
    "EQ": CatalogItem(code="EQ", name="Dosificador", price_list=12000.0),
}


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    path = str(tmp_path / "evaluador_test.sqlite")
    apply_migrations(path)
    return path


def _escenario() -> Escenario:
    line = seleccionar_codigo(nueva_linea_venta(), "a", CATALOG)
    line.qty = 10.0
    line.sell_price = 1000.0
    line.discount_pct = 0.1
    com = seleccionar_codigo_comodato(nueva_linea_comodato(), "eq", CATALOG)
    return Escenario(
        customer_name="Cliente Uno",
        params=QuoteParams(commission_pct=0.05, months=12),
        sale_lines=[line],
        comodato_lines=[com],
    )


# ---------------------------
# líneas
# ---------------------------

def test_seleccionar_codigo_fills_from_catalog():
    line = seleccionar_codigo(nueva_linea_venta(), " a ", CATALOG)
    assert line.code == "A"
    assert line.name == "Detergente"
    assert line.price_list == 700.0
    assert line.kilos == 2.0


def test_seleccionar_codigo_unknown_resets_fields():
    line = seleccionar_codigo(seleccionar_codigo(nueva_linea_venta(), "A", CATALOG), "zz", CATALOG)
    assert line.code == "ZZ"
    assert line.name == ""
    assert line.price_list == 0.0
    assert line.kilos == 1.0


def test_duplicar_y_quitar_linea():
    lines = [seleccionar_codigo(nueva_linea_venta(), "A", CATALOG), nueva_linea_venta()]
    dup = duplicar_linea(lines, 0)
    assert [l.code for l in dup] == ["A", "A", ""]
    assert dup[1] == dup[0] and dup[1] is not dup[0]
    assert [l.code for l in quitar_linea(dup, 1)] == ["A", ""]


# ---------------------------
# escenario JSON
# ---------------------------

def test_export_payload_scenario_v2():
    esc = _escenario()
    totals = calcular(esc, CATALOG)
    payload = exportar_escenario(esc, totals, hoy=date(2026, 10, 19))
    assert payload["version"] == "scenario-v2"
    assert payload["customerName"] == "Cliente Uno"
    assert payload["date"] == "19-10-2026"
    assert payload["metrics"]["ventasTot"] == pytest.approx(18000.0)
    assert payload["metrics"]["comodatoMensual"] == pytest.approx(1000.0)
    assert payload["params"] == {
        "commissionPct": 0.05, "months": 12, "usePriceListAsCost": True, "commissionOnNet": True,
    }
    assert payload["saleLines"][0]["sellPrice"] == 1000.0
    assert payload["comodatoLines"][0]["priceList"] == 12000.0
    json.dumps(payload)


def test_import_round_trip_restores_lines_and_params():
    esc = _escenario()
    text = json.dumps(exportar_escenario(esc, calcular(esc, CATALOG)))
    back = importar_escenario(text)
    assert back.customer_name == "Cliente Uno"
    assert back.params.commission_pct == 0.05
    assert back.sale_lines == esc.sale_lines
    assert back.comodato_lines == esc.comodato_lines


def test_import_partial_keeps_base_sections_and_ignores_mistyped_params():
    base = _escenario()
    text = json.dumps({"params": {"months": 24, "commissionPct": "mucho", "commissionOnNet": "si"}})
    out = importar_escenario(text, base=base)
    assert out.params.months == 24
    assert out.params.commission_pct == 0.05
    assert out.params.commission_on_net is True
    assert out.sale_lines == base.sale_lines
    assert out.customer_name == "Cliente Uno"
    # el escenario base no se modifica
    assert base.params.months == 12


@pytest.mark.parametrize("text", [
    "{no es json",
    "[1, 2]",
    json.dumps({"saleLines": {"code": "A"}}),
    json.dumps({"saleLines": [{"code": "A", "qty": "diez"}]}),
    json.dumps({"comodatoLines": ["EQ"]}),
    '{"params": {"months": Infinity}}',
    '{"params": {"commissionPct": NaN}}',
    '{"saleLines": [{"code": "A", "qty": -Infinity}]}',
])
def test_import_invalid_raises_and_applies_nothing(text):
    base = _escenario()
    with pytest.raises(ScenarioError):
        importar_escenario(text, base=base)
    assert base.sale_lines[0].qty == 10.0


def test_sale_lines_from_json_rejects_non_finite_numbers():
    with pytest.raises(ScenarioError):
        sale_lines_from_json([{"code": "A", "sellPrice": float("inf")}])
    with pytest.raises(ScenarioError):
        sale_lines_from_json([{"code": "A", "kilos": float("nan")}])


# ---------------------------
# planilla
# ---------------------------

def test_exportar_xlsx_writes_three_sheets(tmp_path: Path):
    esc = _escenario()
    totals = calcular(esc, CATALOG)
    path = exportar_xlsx(esc, totals, str(tmp_path / "evaluacion.xlsx"), hoy=date(2026, 10, 19))

    sheets = pd.read_excel(path, sheet_name=None)
    assert list(sheets) == ["Resumen", "Productos", "Comodatos"]

    resumen = dict(zip(sheets["Resumen"]["Campo"], sheets["Resumen"]["Valor"]))
    assert resumen["Cliente"] == "Cliente Uno"
    assert resumen["Viable"] in ("Sí", "No")

    prods = sheets["Productos"]
    assert list(prods.columns)[:3] == ["N", "codigo", "nombre"]
    assert prods.loc[0, "venta"] == pytest.approx(18000.0)
    assert prods.loc[0, "asignacion_comodato"] == pytest.approx(1000.0)

    com = sheets["Comodatos"]
    assert com.loc[0, "costo_mensual_total"] == pytest.approx(12000.0)


# ---------------------------
# estado persistido
# ---------------------------

def test_guardar_y_cargar_escenario(db_path):
    repo = EstadoRepo(db_path)
    esc = _escenario()
    esc.client_exec = "Ejecutivo"
    guardar_escenario(repo, esc)
    back = cargar_escenario(repo)
    assert back.sale_lines == esc.sale_lines
    assert back.comodato_lines == esc.comodato_lines
    assert back.params == esc.params
    assert back.client_exec == "Ejecutivo"


def test_cargar_escenario_defaults_on_empty_or_corrupt_state(db_path):
    repo = EstadoRepo(db_path)
    repo.set_json("sales", "no es una lista")
    esc = cargar_escenario(repo)
    assert esc.sale_lines == []
    assert esc.params == QuoteParams()


def test_aceptar_clears_evaluation_and_increments_doc_number(db_path):
    repo = EstadoRepo(db_path)
    esc = _escenario()
    esc.client_exec = "Ejecutivo"
    guardar_escenario(repo, esc)

    assert aceptar(db_path) == 2
    assert aceptar(db_path) == 3
    assert repo.get_json(K_DOC_NUMBER) == 3

    after = cargar_escenario(repo)
    assert after.sale_lines == []
    assert after.comodato_lines == []
    assert after.customer_name == ""
    assert after.client_exec == "Ejecutivo"
    assert after.params.commission_pct == 0.05


def test_importar_archivo_persists_and_cotizar_uses_saved_catalog(db_path, tmp_path: Path):
    guardar_catalogo(CATALOG, db_path)
    assert catalogo_guardado(db_path) == CATALOG

    esc = _escenario()
    path = tmp_path / "escenario.json"
    path.write_text(json.dumps(exportar_escenario(esc, calcular(esc, CATALOG))), encoding="utf-8")

    res = cotizar_archivo(str(path), db_path)
    assert res["totals"].ventas_tot == pytest.approx(18000.0)
    # cotizar no modifica el estado
    assert cargar_escenario(EstadoRepo(db_path)).sale_lines == []

    importar_escenario_archivo(str(path), db_path)
    assert cargar_escenario(EstadoRepo(db_path)).customer_name == "Cliente Uno"


def test_importar_archivo_invalid_keeps_state(db_path, tmp_path: Path):
    repo = EstadoRepo(db_path)
    guardar_escenario(repo, _escenario())
    bad = tmp_path / "malo.json"
    bad.write_text('{"saleLines": [{"qty": "x"}]}', encoding="utf-8")
    with pytest.raises(ScenarioError):
        importar_escenario_archivo(str(bad), db_path)
    assert cargar_escenario(repo).sale_lines[0].code == "A"
