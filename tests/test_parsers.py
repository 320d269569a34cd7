import csv
import io
from datetime import date, datetime

import pandas as pd
import pytest

from evaluador.adapters.parsers import (
    date_from_periodo,
    detect_delimiter,
    is_blank,
    parse_csv,
    parse_date,
    rows_to_records,
    slug,
    to_number,
)


# ---------------------------
# CSV
# ---------------------------

def test_parse_csv_comma_with_quotes_and_embedded_newline():
    text = 'code,name,price\nA1,"Detergente ""Pro""",1000\nB2,"Línea 1\nLínea 2",2000\n'
    rows = parse_csv(text)
    assert rows == [
        ["code", "name", "price"],
        ["A1", 'Detergente "Pro"', "1000"],
        ["B2", "Línea 1\nLínea 2", "2000"],
    ]


FILAS_CSV = [
    ["codigo", "nombre", "nota"],
    ["A1", 'Detergente "Pro"', "uso diario"],
    ["B2", "Línea 1\nLínea 2", "a, b; c"],
    ["C3", "", '""'],
    ["D4", "precio; 1.234,56", "fin"],
]


@pytest.mark.parametrize("delim", [",", ";"])
@pytest.mark.parametrize("terminator", ["\n", "\r\n"])
def test_parse_csv_reproduces_csv_writer_output(delim, terminator):
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delim, lineterminator=terminator)
    writer.writerows(FILAS_CSV)
    assert parse_csv(buf.getvalue()) == FILAS_CSV


def test_parse_csv_semicolon_ignores_commas_inside_quotes():
    text = 'codigo;nombre;precio\r\nX;"a, b, c";"1.234,56"\r\n'
    assert detect_delimiter(text) == ";"
    rows = parse_csv(text)
    assert rows == [["codigo", "nombre", "precio"], ["X", "a, b, c", "1.234,56"]]


def test_detect_delimiter_tie_goes_to_comma():
    assert detect_delimiter("a;b,c") == ","
    assert detect_delimiter("") == ","


def test_detect_delimiter_only_reads_header_line():
    # la cabecera decide aunque el cuerpo tenga más puntos y comas
    assert detect_delimiter("a,b,c\n1;2;3;4;5;6") == ","


def test_parse_csv_strips_bom_and_trailing_blank_rows():
    rows = parse_csv("\ufeffa,b\n1,2\n\n,\n")
    assert rows == [["a", "b"], ["1", "2"]]


def test_parse_csv_empty_text():
    assert parse_csv("") == []
    assert parse_csv(None) == []


def test_rows_to_records_missing_cells_are_none_and_blank_rows_skipped():
    rows = [["", ""], [" code ", "name\r", "kilos"], ["A", "Uno"], ["", "", ""], ["B", "Dos", "5"]]
    recs = rows_to_records(rows)
    assert recs == [
        {"code": "A", "name": "Uno", "kilos": None},
        {"code": "B", "name": "Dos", "kilos": "5"},
    ]


def test_rows_to_records_empty_grid():
    assert rows_to_records([]) == []
    assert rows_to_records([["", " "]]) == []


# ---------------------------
# slug / blancos
# ---------------------------

@pytest.mark.parametrize("raw,expected", [
    ("Código", "codigo"),
    ("Año", "ano"),
    ("  Rut Cliente ", "rut cliente"),
    ("% Descuento", "descuento"),
    ("U_FACTORFLETE", "u factorflete"),
    (None, ""),
])
def test_slug(raw, expected):
    assert slug(raw) == expected


def test_is_blank():
    assert is_blank(None)
    assert is_blank("  ")
    assert is_blank(float("nan"))
    assert is_blank(pd.NA)
    assert not is_blank(0)
    assert not is_blank("0")


# ---------------------------
# números
# ---------------------------

@pytest.mark.parametrize("raw,expected", [
    ("1.234,56", 1234.56),
    ("$ 1.234.567", 1234567.0),
    ("1.234", 1234.0),
    ("12.5", 12.5),
    ("0,1", 0.1),
    ("-3", -3.0),
    (42, 42.0),
    (2.5, 2.5),
])
def test_to_number_locale(raw, expected):
    assert to_number(raw) == pytest.approx(expected)


def test_to_number_default_when_missing():
    assert to_number(None) is None
    assert to_number("", 0.0) == 0.0
    assert to_number("abc", 7.0) == 7.0
    assert to_number(float("nan"), 0.0) == 0.0
    assert to_number("-", None) is None


# ---------------------------
# fechas
# ---------------------------

@pytest.mark.parametrize("raw,expected", [
    ("2025-03-15", date(2025, 3, 15)),
    ("2025-03-15T10:00:00", date(2025, 3, 15)),
    ("15/03/2025", date(2025, 3, 15)),
    ("05-01-24", date(2024, 1, 5)),
    ("Date(2025,0,31)", date(2025, 1, 31)),
    (datetime(2025, 6, 1, 12, 0), date(2025, 6, 1)),
    (pd.Timestamp("2024-12-31"), date(2024, 12, 31)),
    (date(2023, 2, 28), date(2023, 2, 28)),
])
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_invalid():
    assert parse_date(None) is None
    assert parse_date("") is None
    assert parse_date("31/02/2025") is None
    assert parse_date("sin fecha") is None


def test_date_from_periodo():
    assert date_from_periodo("2025", "3") == date(2025, 3, 1)
    assert date_from_periodo(2025.0, 11.0) == date(2025, 11, 1)
    assert date_from_periodo("Año 2024", None, "Marzo 2024") == date(2024, 3, 1)
    assert date_from_periodo(None, "3") is None
    assert date_from_periodo("2025", "13") is None
