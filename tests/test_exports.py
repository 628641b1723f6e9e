"""
Unit Tests - Export Module

Tests for CSV, Excel and PDF exports of FTL data.
"""

import io
import pytest
from datetime import timedelta

import pandas as pd

from alerts import generate_ftl_alerts
from conftest import daily_flight_series
from exports import (
    export_alerts,
    export_ftl_metrics,
    export_month_breakdown,
    export_to_csv,
    export_to_excel,
    ftl_metrics_rows,
    month_breakdown_rows,
)
from metrics_projection import project, project_month
from records import DailyTotals


@pytest.fixture
def metrics(anchor, limit_table):
    return project("P001", anchor, daily_flight_series(anchor, 28, hours=1.5), limit_table)


@pytest.fixture
def report(anchor, limit_table):
    return project_month("P001", 2026, 2, daily_flight_series(anchor, 28, hours=1.5), limit_table)


class TestRowBuilders:
    """Tests for export row builders."""

    def test_ftl_metrics_rows(self, metrics):
        rows = ftl_metrics_rows([metrics])

        assert len(rows) == 2
        flight = rows[1]
        assert flight["Total"] == "42:00"
        assert flight["Max (h)"] == "100"
        assert flight["Percentage"] == 42.0
        assert flight["Tier"] == "nominal"

    def test_month_breakdown_rows(self, report):
        rows = month_breakdown_rows(report)

        assert len(rows) == 28
        assert rows[0]["Date"] == "2026-02-01"
        assert rows[0]["Flight"] == "01:30"
        assert rows[-1]["flight_time_28d (%)"] == 42.0
        assert rows[-1]["Violations"] == ""


class TestCsvExport:
    """Tests for CSV export."""

    def test_empty(self):
        assert export_to_csv([]) == b""

    def test_has_bom_and_header(self, metrics):
        content = export_ftl_metrics([metrics], "csv")

        assert content.startswith(b"\xef\xbb\xbf")
        header = content.decode("utf-8-sig").splitlines()[0]
        assert header.startswith("Staff ID,Anchor Date,Limit")


class TestExcelExport:
    """Tests for Excel export."""

    def test_metrics_workbook(self, metrics):
        content = export_ftl_metrics([metrics], "xlsx")

        assert content.startswith(b"PK")
        df = pd.read_excel(io.BytesIO(content), sheet_name="FTL Metrics")
        assert list(df["Total"]) == ["00:00", "42:00"]

    def test_month_workbook_sheets(self, report):
        content = export_month_breakdown(report, "xlsx")

        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)
        assert set(sheets) == {"Summary", "Daily"}
        assert len(sheets["Daily"]) == 28

    def test_no_data(self):
        content = export_to_excel({"Empty Sheet": []})

        assert content.startswith(b"PK")
        assert list(pd.read_excel(io.BytesIO(content), sheet_name=None)) == ["Empty"]


class TestPdfExport:
    """Tests for PDF export."""

    def test_metrics_pdf(self, metrics):
        assert export_ftl_metrics([metrics], "pdf").startswith(b"%PDF")

    def test_month_pdf(self, report):
        assert export_month_breakdown(report, "pdf").startswith(b"%PDF")

    def test_exceeded_rows_pdf(self, anchor, limit_table):
        series = {anchor - timedelta(days=i): DailyTotals(duty_hours=13.0) for i in range(7)}
        metrics = project("P001", anchor, series, limit_table)

        assert export_ftl_metrics([metrics], "pdf").startswith(b"%PDF")

    def test_alerts_pdf_without_alerts(self):
        assert export_alerts([], "pdf").startswith(b"%PDF")


class TestFormats:
    def test_unknown_format(self, metrics):
        with pytest.raises(ValueError):
            export_ftl_metrics([metrics], "docx")

    def test_format_is_case_insensitive(self, metrics):
        assert export_ftl_metrics([metrics], "CSV").startswith(b"\xef\xbb\xbf")

    def test_alerts_csv(self, anchor, limit_table):
        series = {anchor - timedelta(days=i): DailyTotals(duty_hours=13.0) for i in range(7)}
        alerts = generate_ftl_alerts([project("P001", anchor, series, limit_table)])

        content = export_alerts(alerts, "csv").decode("utf-8-sig")

        assert "FTL_CRITICAL" in content
        assert "duty_time_7d" in content
