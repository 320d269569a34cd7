# evaluador/config.py
"""
Configuración global y valores por defecto del evaluador.
"""

import os
from dataclasses import dataclass


# Ruta por defecto del SQLite con el estado de la sesión
DB_PATH = os.path.join(os.getcwd(), "evaluador.db")

# Hojas por defecto (Google Sheets nativos)
DEFAULT_VENTAS_URL = "https://docs.google.com/spreadsheets/d/1ptMOxf5TNzv-cPnQ6j1Mp_-NYQX9QliS/edit#gid=871602912"
DEFAULT_COMODATOS_URL = "https://docs.google.com/spreadsheets/d/1ptMOxf5TNzv-cPnQ6j1Mp_-NYQX9QliS/edit#gid=551810728"
DEFAULT_CATALOG_URL = "https://docs.google.com/spreadsheets/d/1UXVAxwzg-Kh7AWCPnPbxbEpzXnRPR2pDBKrRUFNZKZo/edit?gid=0#gid=0"

SHEETS_HOST = "https://docs.google.com"

# Versión del payload de escenario exportado a JSON
SCENARIO_VERSION = "scenario-v2"


@dataclass
class DefaultConfig:
    """Valores por defecto de los parámetros de cotización y de exposición."""
    # cotización
    commission_pct: float = 0.0
    months: int = 12                      # meses de contrato del comodato
    use_price_list_as_cost: bool = True
    commission_on_net: bool = True
    viability_threshold: float = 0.5      # margen final mínimo
    # exposición de comodatos
    rel_max: float = 0.20                 # cuota mensual / venta mensual máxima
    contract_months: int = 24
    avg_mode: str = "salesMonths"         # 'salesMonths' | 'calendar6'
    key_type: str = "RUT"                 # 'RUT' | 'SN'
    # carga de hojas (segundos)
    http_timeout: float = 30.0
    gviz_timeout: float = 15.0


# Instancia global de los valores por defecto
DEFAULTS = DefaultConfig()
