# app.py
"""
Punto de entrada de la aplicación.

Uso:
  python app.py migrate --db evaluador.db
  python app.py catalogo cargar catalogo.xlsx
  python app.py cotizar escenario.json --xlsx evaluacion.xlsx
  python app.py comodatos --demo
  python app.py params show
"""

from evaluador.adapters.cli import main

if __name__ == "__main__":
    main()
