# evaluador/adapters/cli.py
"""
CLI del evaluador de negocios y comodatos (Typer).

Comandos principales:
- migrate                      -> crea / actualiza el SQLite de estado
- catalogo cargar [FUENTE]     -> carga catálogo desde Google Sheets, CSV o XLSX
- catalogo mostrar             -> lista el catálogo guardado
- cotizar ESCENARIO.json       -> calcula la evaluación (y exporta JSON/XLSX)
- importar ESCENARIO.json      -> aplica un escenario sobre el estado guardado
- aceptar                      -> limpia la evaluación e incrementa el N° de documento
- params show/set              -> parámetros de cotización y de exposición
- comodatos                    -> exposición de clientes vigentes
- logs [TIPO]                  -> últimas líneas de un log
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from evaluador.config import DB_PATH
from evaluador.domain.exposicion import AVG_MODES, KEY_TYPES
from evaluador.errors import EvaluadorError
from evaluador.infra import logger as log_cfg
from evaluador.infra import repositories as keys
from evaluador.infra.logger import get_log_summary
from evaluador.infra.migrations import apply_migrations, schema_version
from evaluador.infra.repositories import EstadoRepo
from evaluador.usecases.catalogo import cargar_catalogo, catalogo_guardado
from evaluador.usecases.comodatos import (
    cargar_datos,
    datos_demo,
    evaluar_solicitud_archivo,
    metricas,
    params_guardados,
    top_productos_cliente,
    urls_guardadas,
)
from evaluador.usecases.cotizar import (
    aceptar,
    cargar_escenario,
    cotizar_archivo,
    exportar_escenario,
    exportar_xlsx,
    importar_escenario_archivo,
)


app = typer.Typer(help="Evaluador de Negocio y Comodatos — CLI")
console = Console()


@app.callback()
def _main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Habilita logs en archivo")):
    if verbose:
        log_cfg.ENABLE_LOGGING = True


# -----------------------
# util
# -----------------------

def _fmt(val: Any) -> str:
    """Formato es-CL: miles con punto, decimales con coma."""
    if isinstance(val, bool):
        return "Sí" if val else "No"
    if isinstance(val, (int, float)):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    if isinstance(val, (date, datetime)):
        return val.strftime("%d/%m/%Y")
    if val is None:
        return ""
    return str(val)


def _pct(v: float) -> str:
    return f"{v * 100:.1f}%"


def _display_table(data: List[Dict[str, Any]], title: str = "Resultado", right: tuple = ()) -> None:
    """Muestra una lista de registros como tabla Rich."""
    if not data:
        console.print(Panel("No se encontraron datos", title=title, border_style="yellow"))
        return
    table = Table(title=title, box=box.ROUNDED)
    columns = list(data[0].keys())
    for column in columns:
        table.add_column(column, justify="right" if column in right else "left")
    for row in data:
        table.add_row(*[_fmt(row.get(col, "")) for col in columns])
    console.print(table)


def _display_kv(data: Dict[str, Any], title: str) -> None:
    table = Table(title=title, box=box.ROUNDED, show_header=False)
    table.add_column("Campo", style="bold")
    table.add_column("Valor", justify="right")
    for k, v in data.items():
        table.add_row(k, v if isinstance(v, str) else _fmt(v))
    console.print(table)


def _fail(e: Exception) -> None:
    console.print(Panel(str(e), title="Error", border_style="red"))
    raise typer.Exit(code=1)


def _estado(db_path: str) -> EstadoRepo:
    apply_migrations(db_path)
    return EstadoRepo(db_path)


# -----------------------
# infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    """Aplica las migraciones del estado."""
    apply_migrations(db_path)
    typer.echo(f">> Migraciones aplicadas (v{schema_version(db_path)}) en: {db_path}")


@app.command("logs")
def cmd_logs(
    tipo: str = typer.Argument("system", help="system | loader | calculos | transactions"),
    lineas: int = typer.Option(50, "--lineas", "-n"),
):
    """Muestra las últimas líneas de un log."""
    typer.echo(get_log_summary(tipo, lineas))


# -----------------------
# catálogo
# -----------------------

catalogo_app = typer.Typer(help="Catálogo de productos y equipos.")
app.add_typer(catalogo_app, name="catalogo")


@catalogo_app.command("cargar")
def cmd_catalogo_cargar(
    fuente: Optional[str] = typer.Argument(None, help="URL de Google Sheets, archivo .csv o .xlsx"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Carga el catálogo y reemplaza el guardado."""
    _estado(db_path)
    try:
        catalog = cargar_catalogo(fuente, db_path=db_path)
    except (EvaluadorError, OSError, ValueError) as e:
        _fail(e)
    typer.echo(f">> Catálogo cargado: {len(catalog)} productos")


@catalogo_app.command("mostrar")
def cmd_catalogo_mostrar(
    q: str = typer.Option("", "--q", help="Filtra por código o nombre"),
    limite: int = typer.Option(50, "--limite"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Lista el catálogo guardado."""
    _estado(db_path)
    ql = q.strip().lower()
    rows = [
        {"code": it.code, "name": it.name, "price_list": it.price_list, "cost": it.cost, "kilos": it.kilos}
        for it in catalogo_guardado(db_path).values()
        if not ql or ql in it.code.lower() or ql in it.name.lower()
    ]
    _display_table(rows[:limite], title=f"Catálogo ({len(rows)} productos)", right=("price_list", "cost", "kilos"))


# -----------------------
# cotización
# -----------------------

@app.command("cotizar")
def cmd_cotizar(
    escenario: str = typer.Argument(..., help="Archivo JSON del escenario"),
    xlsx: Optional[str] = typer.Option(None, "--xlsx", help="Exporta la evaluación a este .xlsx"),
    json_out: Optional[str] = typer.Option(None, "--json", help="Exporta el escenario (scenario-v2) a este .json"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Calcula la evaluación de un escenario contra el catálogo guardado."""
    _estado(db_path)
    try:
        res = cotizar_archivo(escenario, db_path=db_path)
    except (EvaluadorError, OSError) as e:
        _fail(e)
    esc, totals = res["escenario"], res["totals"]

    rows = [
        {
            "N": i + 1,
            "codigo": r.line.code,
            "kilos_mes": r.kilos_mes,
            "precio_kg": r.price_sale_kg,
            "venta": r.venta,
            "costo_kg": r.costo_kg,
            "margen_bruto": r.margen_bruto,
            "comodato": r.asig_comodato,
            "comision": r.comision,
            "margen_final": r.margen_final,
            "mf_%": _pct(r.margen_final_pct),
            "estado": "[yellow]incompleta[/]" if r.incompleta else "ok",
        }
        for i, r in enumerate(totals.lines)
    ]
    _display_table(rows, title=f"Evaluación {esc.customer_name or ''}".strip(),
                   right=("kilos_mes", "precio_kg", "venta", "costo_kg", "margen_bruto", "comodato", "comision", "margen_final", "mf_%"))
    _display_kv({
        "Ventas mensual": totals.ventas_tot,
        "Comodato total": totals.comodato_total_equipos,
        "Comodato mensual": totals.comodato_mensual,
        "% Rel. Comodato/Venta": _pct(totals.rel_com_vta),
        "Margen final": _pct(totals.final_margin_pct),
        "% Comisión final": _pct(totals.effective_commission_pct),
    }, title="Resumen")
    if totals.viable:
        console.print("[bold green]VIABLE[/]")
    else:
        console.print("[bold red]NO VIABLE[/]")

    if json_out:
        with open(json_out, "w", encoding="utf-8") as f:
            json.dump(exportar_escenario(esc, totals), f, ensure_ascii=False, indent=2)
        typer.echo(f">> Escenario exportado: {json_out}")
    if xlsx:
        exportar_xlsx(esc, totals, xlsx)
        typer.echo(f">> Planilla exportada: {xlsx}")


@app.command("importar")
def cmd_importar(
    escenario: str = typer.Argument(..., help="Archivo JSON del escenario"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Aplica un escenario JSON sobre la evaluación guardada."""
    _estado(db_path)
    try:
        esc = importar_escenario_archivo(escenario, db_path=db_path)
    except (EvaluadorError, OSError) as e:
        _fail(e)
    typer.echo(f">> Evaluación importada: {len(esc.sale_lines)} productos, {len(esc.comodato_lines)} comodatos")


@app.command("aceptar")
def cmd_aceptar(
    yes: bool = typer.Option(False, "--yes", "-y", help="No pedir confirmación"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Acepta la evaluación y deja el formulario listo para la próxima."""
    _estado(db_path)
    if not yes and not typer.confirm("¿Aceptar evaluación y limpiar el formulario?"):
        raise typer.Exit(code=0)
    numero = aceptar(db_path)
    typer.echo(f">> Evaluación aceptada. Próximo documento N° {numero}")


# -----------------------
# parámetros
# -----------------------

params_app = typer.Typer(help="Parámetros de cotización y de exposición.")
app.add_typer(params_app, name="params")


@params_app.command("set")
def cmd_params_set(
    commission: Optional[float] = typer.Option(None, help="Comisión base (0..1)"),
    months: Optional[int] = typer.Option(None, help="Meses de amortización del comodato"),
    use_list_as_cost: Optional[bool] = typer.Option(None, "--use-list-as-cost/--no-use-list-as-cost"),
    commission_on_net: Optional[bool] = typer.Option(None, "--commission-on-net/--commission-on-gross"),
    viability: Optional[float] = typer.Option(None, help="Margen final mínimo (0..1)"),
    rel_max: Optional[float] = typer.Option(None, help="Relación comodato/venta máxima"),
    contract_months: Optional[int] = typer.Option(None, help="Meses de contrato por defecto"),
    avg_mode: Optional[str] = typer.Option(None, help="salesMonths | calendar6"),
    ventas_url: Optional[str] = typer.Option(None, help="Hoja de ventas"),
    comodatos_url: Optional[str] = typer.Option(None, help="Hoja de comodatos"),
    catalog_url: Optional[str] = typer.Option(None, help="Hoja de catálogo para `catalogo cargar`"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Actualiza los parámetros informados."""
    repo = _estado(db_path)
    if avg_mode is not None and avg_mode not in AVG_MODES:
        _fail(ValueError(f"avg-mode debe ser uno de {AVG_MODES}"))
    candidatos = [
        (keys.K_COMMISSION, commission),
        (keys.K_MONTHS, months),
        (keys.K_USE_LIST_AS_COST, use_list_as_cost),
        (keys.K_COMMISSION_ON_NET, commission_on_net),
        (keys.K_VIABILITY, viability),
        (keys.K_COM_REL_MAX, rel_max),
        (keys.K_COM_CONTRACT_MONTHS, max(1, contract_months) if contract_months is not None else None),
        (keys.K_COM_AVG_MODE, avg_mode),
        (keys.K_COM_VENTAS_URL, ventas_url),
        (keys.K_COM_COMODATOS_URL, comodatos_url),
        (keys.K_COM_CATALOG_URL, catalog_url),
    ]
    items = [(k, v) for k, v in candidatos if v is not None]
    if not items:
        typer.echo("Nada que cambiar. Indique al menos un parámetro.")
        raise typer.Exit(code=1)
    repo.set_many(items)
    typer.echo(">> Parámetros actualizados.")


@params_app.command("show")
def cmd_params_show(db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    """Muestra los parámetros efectivos."""
    repo = _estado(db_path)
    p = cargar_escenario(repo).params
    pe = params_guardados(db_path)
    urls = urls_guardadas(db_path)
    _display_kv({
        "commission": p.commission_pct,
        "months": p.months,
        "useListAsCost": p.use_price_list_as_cost,
        "commissionOnNet": p.commission_on_net,
        "viabilityThreshold": p.viability_threshold,
        "relMax": pe.rel_max,
        "contractMonths": pe.contract_months,
        "avgMode": pe.avg_mode,
        "filtroTipo": pe.key_type,
        "ventasUrl": urls["ventas"],
        "comodatosUrl": urls["comodatos"],
        "catalogUrl": repo.get_json(keys.K_COM_CATALOG_URL, "") or "(por defecto)",
        "doc.number": int(repo.get_float(keys.K_DOC_NUMBER, 1)),
    }, title="Parámetros")


# -----------------------
# comodatos
# -----------------------

@app.command("comodatos")
def cmd_comodatos(
    tipo: Optional[str] = typer.Option(None, "--tipo", help="Clave: RUT | SN"),
    q: str = typer.Option("", "--q", help="Filtro por clave o nombre"),
    filtro_por: str = typer.Option("RUT", "--filtro-por", help="RUT | Nombre"),
    avg_mode: Optional[str] = typer.Option(None, "--avg-mode", help="salesMonths | calendar6"),
    rel_max: Optional[float] = typer.Option(None, "--rel-max"),
    demo: bool = typer.Option(False, "--demo", help="Usa datos de ejemplo"),
    ventas: Optional[str] = typer.Option(None, "--ventas", help="Hoja o archivo de ventas"),
    comodatos: Optional[str] = typer.Option(None, "--comodatos", help="Hoja o archivo de comodatos"),
    solicitud: Optional[str] = typer.Option(None, "--solicitud", help="JSON de equipos nuevos para el cliente de --q"),
    top: bool = typer.Option(False, "--top", help="Top productos del cliente de --q"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Exposición de comodatos de clientes vigentes."""
    repo = _estado(db_path)
    params = params_guardados(db_path)
    if tipo is not None and tipo.upper() not in KEY_TYPES:
        _fail(ValueError(f"--tipo debe ser uno de {KEY_TYPES}"))
    if avg_mode is not None and avg_mode not in AVG_MODES:
        _fail(ValueError(f"--avg-mode debe ser uno de {AVG_MODES}"))
    if tipo:
        params.key_type = tipo.upper()
        repo.set_json(keys.K_COM_FILTRO_TIPO, params.key_type)
    if avg_mode:
        params.avg_mode = avg_mode
    if rel_max is not None:
        params.rel_max = rel_max

    hoy = date.today()
    try:
        if demo:
            datos = datos_demo(hoy)
        else:
            urls = urls_guardadas(db_path)
            datos = cargar_datos(ventas or urls["ventas"], comodatos or urls["comodatos"], hoy)
        ms = metricas(datos, params, hoy, query=q, filtro_por=filtro_por)
    except (EvaluadorError, OSError, ValueError) as e:
        _fail(e)

    rows = [
        {
            params.key_type: m.key,
            "cliente": m.cliente or "",
            "venta_6m_prom": m.ventas_6m_prom,
            "venta_24m": m.ventas_24m_total,
            "cuota_vigente": m.comodato_mensual_vigente,
            "obligacion": m.comodato_24m_total,
            "equipos": m.equipos_vigentes,
            "relacion": (
                f"[green]{_pct(m.relacion)}[/]" if m.relacion <= params.rel_max else f"[red]{_pct(m.relacion)}[/]"
            ),
        }
        for m in ms
    ]
    _display_table(rows, title=f"Clientes vigentes ({datos.esquema}, {datos.origen})",
                   right=("venta_6m_prom", "venta_24m", "cuota_vigente", "obligacion", "equipos", "relacion"))

    if (solicitud or top) and not ms:
        _fail(EvaluadorError("Ningún cliente vigente coincide con --q"))
    if solicitud:
        try:
            res = evaluar_solicitud_archivo(ms[0], solicitud, params, db_path=db_path)
        except (EvaluadorError, OSError) as e:
            _fail(e)
        ev = res["evaluacion"]
        _display_kv({
            "Cliente": ms[0].cliente or ms[0].key,
            "Cuota vigente": ms[0].comodato_mensual_vigente,
            "Cuota simulada": ev.cuota_simulada,
            "Cuota nueva": ev.cuota_nueva,
            "Relación nueva": _pct(ev.relacion_nueva),
            "Viable": "[bold green]Sí[/]" if ev.viable else "[bold red]No[/]",
        }, title="Solicitud de equipos")
    if top:
        tops = top_productos_cliente(datos, ms[0].key, hoy)
        _display_table(
            [{"sn": t.sn, "producto": t.name or "", "kilos_mes": t.total_kilos, "precio_kg": t.price_venta_kg, "venta_mes": t.total} for t in tops],
            title=f"Top productos {ms[0].key}",
            right=("kilos_mes", "precio_kg", "venta_mes"),
        )


def main():
    app()


if __name__ == "__main__":
    main()
