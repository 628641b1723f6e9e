"""
Export Module

Print/export views of FTL metrics and month breakdowns in CSV, Excel
and PDF formats. Durations are rendered as HH:MM through the duration
codec; percentages keep their raw (unclamped) value.
"""

import io
import csv
import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from alerts import Alert
from duration_codec import encode
from metrics_projection import FTLMetrics, MonthlyReport

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "xlsx", "pdf")

CONTENT_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}


# =====================================================
# Row Builders
# =====================================================

def ftl_metrics_rows(metrics_list: Sequence[FTLMetrics]) -> List[Dict[str, Any]]:
    """One row per (staff member, limit)."""
    rows = []
    for metrics in metrics_list:
        for item in metrics.limits:
            rows.append({
                "Staff ID": metrics.staff_id,
                "Anchor Date": metrics.anchor_date.isoformat(),
                "Limit": item.label or item.name,
                "Window (days)": item.window_days,
                "Total": encode(item.total),
                "Max (h)": f"{item.limit:g}",
                "Percentage": round(item.percentage, 1),
                "Tier": item.tier.value,
            })
    return rows


def month_breakdown_rows(report: MonthlyReport) -> List[Dict[str, Any]]:
    """One row per calendar day with that day's hours and rolling percentages."""
    rows = []
    for row in report.days:
        data = {
            "Date": row.day.isoformat(),
            "Duty": encode(row.totals.duty_hours),
            "Flight": encode(row.totals.flight_hours),
        }
        for item in row.metrics.limits:
            data[f"{item.name} (%)"] = round(item.percentage, 1)
        data["Violations"] = " ".join(row.metrics.violations())
        rows.append(data)
    return rows


def month_summary_rows(report: MonthlyReport) -> List[Dict[str, Any]]:
    """Month totals plus the end-of-month rolling figures."""
    rows = [
        {"Metric": "Staff ID", "Value": report.staff_id},
        {"Metric": "Month", "Value": f"{report.year:04d}-{report.month:02d}"},
        {"Metric": "Month Duty", "Value": encode(report.month_duty_hours)},
        {"Metric": "Month Flight", "Value": encode(report.month_flight_hours)},
    ]
    end = report.end_of_month
    if end is not None:
        for item in end.limits:
            rows.append({
                "Metric": item.label or item.name,
                "Value": f"{encode(item.total)} ({item.percentage:.1f}%)",
            })
    return rows


def alert_rows(alerts: Sequence[Alert]) -> List[Dict[str, Any]]:
    return [
        {
            "Type": alert.alert_type.value,
            "Severity": alert.severity.value,
            "Staff ID": alert.staff_id or "",
            "Limit": alert.limit_name or "",
            "Anchor Date": alert.anchor_date.isoformat() if alert.anchor_date else "",
            "Message": alert.message,
        }
        for alert in alerts
    ]


# =====================================================
# Writers
# =====================================================

# Row shading by tier in PDF tables
TIER_COLORS = {
    "approaching": colors.HexColor("#FFF3CD"),
    "exceeded": colors.HexColor("#F8D7DA"),
}

_MAX_COLUMN_WIDTH = 60


def export_to_csv(data: List[Dict[str, Any]]) -> bytes:
    """
    Write rows as CSV.

    Args:
        data: Rows sharing the first row's keys

    Returns:
        UTF-8 bytes with a BOM so Excel detects the encoding, or b""
        when there are no rows
    """
    if not data:
        return b""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(data[0]))
    writer.writeheader()
    for row in data:
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8-sig")


def _autosize_columns(worksheet) -> None:
    for column in worksheet.columns:
        width = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        worksheet.column_dimensions[column[0].column_letter].width = min(width + 2, _MAX_COLUMN_WIDTH)


def export_to_excel(sheets: Dict[str, List[Dict[str, Any]]]) -> bytes:
    """
    Write one worksheet per non-empty entry of `sheets`.

    Sheet names are cut to Excel's 31 characters. A workbook with no
    data gets a single empty sheet.
    """
    buffer = io.BytesIO()

    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        non_empty = {name[:31]: rows for name, rows in sheets.items() if rows}
        if not non_empty:
            pd.DataFrame().to_excel(writer, sheet_name="Empty", index=False)
        for name, rows in non_empty.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False)
            _autosize_columns(writer.sheets[name])

    return buffer.getvalue()


def _pdf_table(data: List[Dict[str, Any]]) -> Table:
    headers = list(data[0])
    table = Table(
        [headers] + [[str(row.get(h, "")) for h in headers] for row in data],
        repeatRows=1,
    )

    style = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1F3B5B")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]
    if "Tier" in headers:
        for i, row in enumerate(data, start=1):
            shade = TIER_COLORS.get(row.get("Tier"))
            if shade is not None:
                style.append(("BACKGROUND", (0, i), (-1, i), shade))
    table.setStyle(TableStyle(style))
    return table


def export_to_pdf(title: str, data: List[Dict[str, Any]]) -> bytes:
    """
    Render rows as a landscape A4 table under a title.

    Rows carrying a "Tier" column are shaded amber (approaching) or
    red (exceeded).

    Args:
        title: Report title
        data: Rows sharing the first row's keys

    Returns:
        PDF bytes
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=30,
        rightMargin=30,
        topMargin=30,
        bottomMargin=30,
    )
    styles = getSampleStyleSheet()

    story = [
        Paragraph(title, styles["Title"]),
        Paragraph(f"Generated {datetime.now():%Y-%m-%d %H:%M}", styles["Normal"]),
        Spacer(1, 16),
    ]
    if data:
        story.append(_pdf_table(data))
    else:
        story.append(Paragraph("No data for this selection.", styles["Normal"]))

    doc.build(story)
    return buffer.getvalue()


# =====================================================
# FTL Exports
# =====================================================

def _check_format(fmt: str) -> str:
    fmt = (fmt or "csv").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")
    return fmt


def export_ftl_metrics(metrics_list: Sequence[FTLMetrics], fmt: str = "csv") -> bytes:
    """Export FTL snapshots for one or more staff members."""
    fmt = _check_format(fmt)
    rows = ftl_metrics_rows(metrics_list)
    logger.info(f"Exporting {len(rows)} FTL metric rows as {fmt}")

    if fmt == "csv":
        return export_to_csv(rows)
    if fmt == "xlsx":
        return export_to_excel({"FTL Metrics": rows})
    return export_to_pdf("FTL Metrics", rows)


def export_month_breakdown(report: MonthlyReport, fmt: str = "xlsx") -> bytes:
    """Export a month breakdown (duty log print view)."""
    fmt = _check_format(fmt)
    rows = month_breakdown_rows(report)
    title = f"Duty Log {report.staff_id} {report.year:04d}-{report.month:02d}"
    logger.info(f"Exporting {title} as {fmt}")

    if fmt == "csv":
        return export_to_csv(rows)
    if fmt == "xlsx":
        return export_to_excel({
            "Summary": month_summary_rows(report),
            "Daily": rows,
        })
    return export_to_pdf(title, rows)


def export_alerts(alerts: Sequence[Alert], fmt: str = "csv") -> bytes:
    fmt = _check_format(fmt)
    rows = alert_rows(alerts)

    if fmt == "csv":
        return export_to_csv(rows)
    if fmt == "xlsx":
        return export_to_excel({"Alerts": rows})
    return export_to_pdf("FTL Alerts", rows)
