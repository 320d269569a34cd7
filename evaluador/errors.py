# evaluador/errors.py
"""
Excepciones del evaluador.

Ninguna es fatal: los casos de uso registran el error y lo propagan a la
capa de presentación, que deja el estado anterior intacto.
"""

from __future__ import annotations

from typing import List, Optional


class EvaluadorError(Exception):
    """Base de todos los errores del evaluador."""


class SheetLoadError(EvaluadorError):
    """No se pudo cargar una hoja remota (CSV y, si aplica, GViz)."""

    def __init__(self, message: str, attempted_urls: Optional[List[str]] = None, no_fallback: bool = False):
        super().__init__(message)
        self.attempted_urls = list(attempted_urls or [])
        self.no_fallback = no_fallback

    def __str__(self) -> str:
        base = super().__str__()
        if not self.attempted_urls:
            return base
        return base + "\nURLs intentadas: " + ", ".join(self.attempted_urls)


class CatalogError(EvaluadorError, ValueError):
    """Catálogo sin ninguna columna reconocible."""


class ScenarioError(EvaluadorError, ValueError):
    """JSON de escenario inválido; no se aplica nada."""
