"""
Tests del caso de uso de exposición de comodatos.
"""

import json
from datetime import date
from pathlib import Path

import pytest

from evaluador.adapters.sheets_loader import SnapshotSlot
from evaluador.domain.models import CatalogItem, EquipoCatalogo
from evaluador.errors import ScenarioError
from evaluador.infra.migrations import apply_migrations
from evaluador.usecases.catalogo import guardar_catalogo
from evaluador.usecases.comodatos import (
    ParamsExposicion,
    cargar_datos,
    datos_demo,
    evaluar_solicitud_archivo,
    metricas,
    solicitud_desde_json,
    top_productos_cliente,
)

HOY = date(2026, 10, 19)
RUT_A = "76.123.456-7"
RUT_B = "99.888.777-6"


def test_demo_metrics_order_and_active_units():
    ms = metricas(datos_demo(HOY), ParamsExposicion(), HOY)
    assert [m.key for m in ms] == [RUT_B, RUT_A]
    by_key = {m.key: m for m in ms}
    a, b = by_key[RUT_A], by_key[RUT_B]
    assert a.equipos_vigentes == 2
    assert b.equipos_vigentes == 1
    assert a.ventas_6m_prom == pytest.approx(2650000 / 3)
    assert a.comodato_mensual_vigente == pytest.approx(500000 + 6000000 / 18)
    assert b.comodato_mensual_vigente == pytest.approx(400000)
    assert a.cliente == "Cliente A"


def test_demo_metrics_filtered_by_name():
    ms = metricas(datos_demo(HOY), ParamsExposicion(), HOY, query="cliente b", filtro_por="Nombre")
    assert [m.key for m in ms] == [RUT_B]


def test_cargar_datos_from_local_files(tmp_path: Path):
    ventas = tmp_path / "ventas.csv"
    ventas.write_text(
        "Rut Cliente;Nombre Cliente;DocDate;Global Venta\n"
        "1-9;Alfa;2026-09-10;1.000\n"
        "1-9;Alfa;2026-08-10;1.000\n",
        encoding="utf-8",
    )
    comodatos = tmp_path / "comodatos.csv"
    comodatos.write_text(
        "rut,sn,fecha_instalacion,meses_contrato,costo_mensual\n"
        "1-9,EQ1,2026-01-15,24,200\n",
        encoding="utf-8",
    )
    slot = SnapshotSlot()
    datos = cargar_datos(str(ventas), str(comodatos), HOY, slot=slot)
    assert datos.esquema == "contrato"
    assert len(datos.ventas) == 2
    assert slot.value is datos

    [m] = metricas(datos, ParamsExposicion(), HOY)
    assert m.ventas_6m_prom == pytest.approx(1000.0)
    assert m.relacion == pytest.approx(0.2)


def test_cargar_datos_failure_keeps_previous_snapshot(tmp_path: Path):
    slot = SnapshotSlot()
    previo = datos_demo(HOY)
    slot.apply(slot.begin(), previo)
    ok = tmp_path / "ventas.csv"
    ok.write_text("rut,Fecha,Total\n1-9,2026-09-01,10\n", encoding="utf-8")
    with pytest.raises(FileNotFoundError):
        cargar_datos(str(ok), str(tmp_path / "falta.csv"), HOY, slot=slot)
    assert slot.value is previo


def test_solicitud_desde_json_completes_from_catalog():
    equipos = {"EQ": EquipoCatalogo(code="EQ", name="Dosificador", precio=2400.0, costo_mensual=2400.0)}
    filas = solicitud_desde_json({"rows": [{"code": "eq", "qty": 2}, {"code": "X", "costoMensual": "1.500"}]}, equipos)
    assert filas[0].code == "EQ"
    assert filas[0].name == "Dosificador"
    assert filas[0].valor_unit == 2400.0
    assert filas[0].qty == 2.0
    assert filas[1].costo_mensual == 1500.0
    assert filas[1].valor_unit is None


def test_solicitud_desde_json_invalid():
    with pytest.raises(ScenarioError):
        solicitud_desde_json({"foo": 1}, {})
    with pytest.raises(ScenarioError):
        solicitud_desde_json(["EQ"], {})


def test_evaluar_solicitud_archivo(tmp_path: Path):
    db_path = str(tmp_path / "estado.sqlite")
    apply_migrations(db_path)
    guardar_catalogo({"EQ": CatalogItem(code="EQ", name="Dosificador", price_list=2400.0)}, db_path)
    path = tmp_path / "solicitud.json"
    path.write_text(json.dumps([{"code": "EQ", "qty": 2, "meses": 24}]), encoding="utf-8")

    metric = {m.key: m for m in metricas(datos_demo(HOY), ParamsExposicion(), HOY)}[RUT_A]
    res = evaluar_solicitud_archivo(metric, str(path), ParamsExposicion(rel_max=0.2), db_path=db_path)
    ev = res["evaluacion"]
    assert ev.cuota_simulada == pytest.approx(200.0)
    assert ev.cuota_nueva == pytest.approx(metric.comodato_mensual_vigente + 200.0)
    assert not ev.viable


def test_top_productos_cliente_demo():
    tops = top_productos_cliente(datos_demo(HOY), RUT_A, HOY)
    assert [t.sn for t in tops] == ["PT-001", "PT-002"]
    assert tops[0].total == pytest.approx((900000 + 950000) / 6)
