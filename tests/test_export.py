"""Tests for the Excel report export."""

import openpyxl

from docintake.core.aggregator import build_report
from docintake.export import SUMMARY_SHEET, write_report_workbook


def test_workbook_sheets(catalog, fixed_now, tmp_path):
    report = build_report([
        {"docTypeId": "cedula-identidad", "data": {"rut": "11.111.111-1", "nombres": "Ana", "apellidos": "Soto"}},
        {"docTypeId": "liquidacion-sueldo", "data": [
            {"periodo": "2025-06", "liquido_a_pagar": 500000, "descuentos": {"afp": 1}},
            {"periodo": "2025-07", "liquido_a_pagar": 700000, "cargo": "Analista"},
        ]},
    ], catalog, now=fixed_now)

    path = write_report_workbook(report, tmp_path / "out" / "reporte.xlsx")

    workbook = openpyxl.load_workbook(path)
    assert workbook.sheetnames == [SUMMARY_SHEET, "cedula-identidad", "liquidacion-sueldo"]

    summary = {(row[0], row[1]): row[2] for row in workbook[SUMMARY_SHEET].iter_rows(min_row=2, values_only=True)}
    assert summary[("identidad", "mainId")] == "11.111.111-1"
    assert summary[("identidad", "mainName")] == "Ana Soto"
    assert summary[("liquidacion_sueldo", "total_liquido")] == 1200000

    slips = list(workbook["liquidacion-sueldo"].iter_rows(values_only=True))
    headers = list(slips[0])
    assert headers[:2] == ["periodo", "liquido_a_pagar"]
    assert "cargo" in headers
    assert len(slips) == 3
    assert slips[1][headers.index("descuentos")] == '{"afp": 1}'
    assert slips[1][headers.index("cargo")] is None


def test_workbook_for_empty_report(catalog, fixed_now, tmp_path):
    path = write_report_workbook(build_report([], catalog, now=fixed_now), tmp_path / "vacio.xlsx")
    assert openpyxl.load_workbook(path).sheetnames == [SUMMARY_SHEET]


def test_long_document_type_ids_get_distinct_sheets(catalog, fixed_now, tmp_path):
    prefix = "certificado-de-cotizaciones-previsionales"
    report = build_report([], catalog, now=fixed_now).model_copy(update={"documents": {
        f"{prefix}-afp": [{"monto": 1}],
        f"{prefix}-isapre": [{"monto": 2}],
        "cartola/mensual": {"saldo": 3},
    }})

    workbook = openpyxl.load_workbook(write_report_workbook(report, tmp_path / "largo.xlsx"))

    names = workbook.sheetnames
    assert len(set(names)) == 4
    assert all(len(name) <= 31 for name in names)
    assert names[1] == prefix[:31]
    assert names[2] == prefix[:29] + "~2"
    assert names[3] == "cartola_mensual"
    assert workbook[names[2]]["A2"].value == 2
