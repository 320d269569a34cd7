# evaluador/infra/logger.py
"""
Sistema de logging del evaluador.

Un logger por archivo para cada preocupación:
- system: eventos generales y operaciones de archivo
- loader: cada intento de carga de hoja (CSV / GViz / archivo local)
- calculos: recálculos de cotización y de exposición
- transactions: escrituras sobre el estado persistido

Todo queda apagado salvo que se active ENABLE_LOGGING (la CLI lo hace con
--verbose) o ENABLE_OUTPUT.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


ENABLE_LOGGING = False
ENABLE_OUTPUT = False

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOGS_DIR = Path(__file__).parent.parent / "logs"
LOG_FILES: Dict[str, Path] = {
    tipo: LOGS_DIR / f"{tipo}.log" for tipo in ("system", "loader", "calculos", "transactions")
}


def print_system(*args, **kwargs):
    """print() controlado por ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)


def setup_logger(name: str, log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """Logger con un único FileHandler diferido (el archivo se crea al primer uso)."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
    handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(handler)
    return logger


_loggers = {tipo: setup_logger(f"evaluador.{tipo}", path) for tipo, path in LOG_FILES.items()}
system_logger = _loggers["system"]
loader_logger = _loggers["loader"]
calculos_logger = _loggers["calculos"]
transaction_logger = _loggers["transactions"]


def _enabled() -> bool:
    return ENABLE_LOGGING or ENABLE_OUTPUT


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra una operación sobre el estado.

    Args:
        operation: cargar_catalogo, importar_escenario, aceptar_evaluacion, ...
        data: parámetros de la operación
        result: resultado, si terminó bien
        error: mensaje, si falló
    """
    if not _enabled():
        return
    if error:
        transaction_logger.error(f"TX_FAILED {operation}: {error} | data={data}")
    else:
        transaction_logger.info(f"TX_OK {operation}: result={result} | data={data}")


def log_sheet_load(path: str, url: str, rows: int = 0, error: Optional[str] = None) -> None:
    """Un intento de carga; ``path`` es 'csv', 'gviz', 'xlsx' o 'archivo'."""
    if not _enabled():
        return
    msg = f"LOAD_{path.upper()} url={url} rows={rows}"
    if error:
        loader_logger.warning(f"{msg} FAILED: {error}")
    else:
        loader_logger.info(msg)


def log_calculo(nombre: str, **kwargs) -> None:
    if not _enabled():
        return
    calculos_logger.info(f"CALC_{nombre.upper()}: {kwargs}")


def log_system_event(event: str, details: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
    if not _enabled():
        return
    emit = getattr(system_logger, level.lower(), system_logger.info)
    emit(f"EVENT {event}: {details or {}}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """Importaciones y exportaciones de archivos (escenarios, planillas)."""
    if not _enabled():
        return
    system_logger.info(f"FILE_{operation.upper()} {file_path} rows={rows_processed} {kwargs}")


def get_log_summary(log_type: str = "system", lines: int = 100) -> str:
    """Últimas ``lines`` líneas del log pedido."""
    log_file = LOG_FILES.get(log_type)
    if log_file is None or not log_file.exists():
        return f"Log {log_type} no encontrado."
    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            recent = f.readlines()[-lines:]
    except OSError as e:
        return f"Error al leer log {log_type}: {e}"
    stamp = datetime.now().strftime(DATE_FORMAT)
    return f"# {log_type} @ {stamp}\n" + ''.join(recent)
