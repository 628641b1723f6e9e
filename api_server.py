"""
Flask API Server

JSON reporting surface for the FTL compliance engine. Request bodies
carry the records supplied by the roster / duty-log and flight-hours
logging collaborators; nothing is persisted.
"""

import os
import logging
from datetime import date, datetime
from enum import Enum

from flask import Flask, jsonify, request, Response
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from dotenv import load_dotenv

from alerts import AlertSeverity, generate_ftl_alerts, summarize_alerts
from cache import ProjectionCache, cache
from data_processor import DataProcessor, get_top_high_intensity_staff
from duration_codec import ClockForm, Invalid, classify, encode
from exports import CONTENT_TYPES, EXPORT_FORMATS, export_alerts, export_ftl_metrics, export_month_breakdown
from ftl_errors import FTLError, InvalidRecord
from limit_evaluator import load_limit_table
from rolling_window import month_bounds

# Load environment
dotenv_path = os.getenv("DOTENV_CONFIG_PATH", ".env")
load_dotenv(dotenv_path)

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "FTL Compliance Engine"
SERVICE_VERSION = "1.0.0"


# Custom JSON Provider to handle dates and enums
class CustomJSONProvider(DefaultJSONProvider):
    def default(self, obj):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


# Create Flask app
app = Flask(__name__)
app.json = CustomJSONProvider(app)

# =========================================================
# CORS Configuration
# =========================================================

# CORS - Restricted by default (localhost only)
_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5000,http://127.0.0.1:5000").split(",")
CORS(app, resources={
    r"/api/*": {
        "origins": _cors_origins,
        "methods": ["GET", "POST"],
        "allow_headers": ["Content-Type"]
    }
})


@app.after_request
def add_security_headers(response):
    """Add security headers to all responses."""
    response.headers['X-Frame-Options'] = 'SAMEORIGIN'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


# Limit table is fatal at import: a bad table must stop the server starting
limit_table = load_limit_table()
projection_cache = ProjectionCache(cache)


# =========================================================
# Helper Functions
# =========================================================

def parse_date_param(value, field: str = "date", default: date = None) -> date:
    """Parse a YYYY-MM-DD value; missing falls back to default (or today)."""
    if not value:
        return default or date.today()
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidRecord(f"{field} must be YYYY-MM-DD, got {value!r}")


def parse_month_param(body: dict):
    try:
        year = int(body.get("year"))
        month = int(body.get("month"))
    except (TypeError, ValueError):
        raise InvalidRecord("year and month are required integers")
    if not 1 <= month <= 12:
        raise InvalidRecord(f"month must be 1-12, got {month}")
    if not 1 <= year <= 9999:
        raise InvalidRecord(f"year out of range: {year}")
    return year, month


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidRecord("Request body must be a JSON object")
    return body


def processor_for(body: dict) -> DataProcessor:
    return DataProcessor.from_options(body.get("options"), limit_table=limit_table)


def api_response(data=None, error=None, status=200):
    """Standard API response format."""
    response = {
        "success": error is None,
        "timestamp": datetime.now().isoformat(),
        "data": data
    }
    if error:
        response["error"] = error
    return jsonify(response), status


# =========================================================
# Health & Configuration Endpoints
# =========================================================

@app.route('/health')
def health_check():
    """Health check endpoint."""
    return api_response({
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "limits": len(limit_table),
        "cache": cache.status()
    })


@app.route('/api/ftl/limits')
def get_limits():
    """Configured limit table and tier thresholds."""
    return api_response(limit_table.to_dict())


# =========================================================
# Duration Endpoints
# =========================================================

def _describe_duration(value):
    form = classify(value)
    if isinstance(form, Invalid):
        return {"input": value, "valid": False, "error": form.reason}
    return {
        "input": value,
        "valid": True,
        "form": "clock" if isinstance(form, ClockForm) else "decimal",
        "hours": form.decimal_hours,
        "text": encode(form.decimal_hours),
    }


@app.route('/api/duration/normalize', methods=['POST'])
def normalize_duration():
    """
    Normalize duration text to HH:MM.

    Body:
        value: single duration text (400 when malformed), or
        values: list of duration texts (each reported individually)
    """
    body = json_body()

    if "values" in body:
        values = body.get("values")
        if not isinstance(values, list):
            raise InvalidRecord("values must be a list")
        return api_response({"results": [_describe_duration(v) for v in values]})

    result = _describe_duration(body.get("value"))
    if not result["valid"]:
        return api_response(data=result, error=f"Cannot parse {body.get('value')!r}: {result['error']}", status=400)
    return api_response(result)


# =========================================================
# FTL Endpoints
# =========================================================

@app.route('/api/ftl/daily-totals', methods=['POST'])
def get_daily_totals():
    """
    Daily duty and flight totals for a date range.

    Body:
        staff_id, duty_entries, flight_entries, log_records, options
        start, end: YYYY-MM-DD (default: the single date `date`, or today)
    """
    body = json_body()
    processor = processor_for(body)
    records = processor.parse_records(body)

    day = parse_date_param(body.get("date"))
    start = parse_date_param(body.get("start"), "start", day)
    end = parse_date_param(body.get("end"), "end", day)
    if end < start:
        raise InvalidRecord("end must not be before start")

    series = processor.daily_series(records)
    days = [
        {
            "date": d.isoformat(),
            **totals.to_dict(),
            "duty_text": encode(totals.duty_hours),
            "flight_text": encode(totals.flight_hours),
        }
        for d, totals in series.items()
        if start <= d <= end
    ]

    return api_response({
        "staff_id": records.staff_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "days": days,
        "aircraft_breakdown": processor.aircraft_breakdown(records, start, end),
    })


@app.route('/api/ftl/metrics', methods=['POST'])
def get_ftl_metrics():
    """
    FTL snapshot for one staff member at one anchor date.

    Body:
        staff_id, anchor_date, duty_entries, flight_entries, log_records, options
    """
    body = json_body()
    processor = processor_for(body)
    records = processor.parse_records(body)
    anchor = parse_date_param(body.get("anchor_date"), "anchor_date")

    series = processor.history_series(records, anchor)
    metrics = projection_cache.get_or_project(records.staff_id, anchor, series, limit_table)

    first, last = month_bounds(anchor)
    data = metrics.to_dict()
    data["aircraft_breakdown"] = processor.aircraft_breakdown(records, first, last)
    return api_response(data)


@app.route('/api/ftl/month', methods=['POST'])
def get_month_breakdown():
    """
    Per-day FTL metrics for one calendar month.

    Body:
        staff_id, year, month, duty_entries, flight_entries, log_records, options
    """
    body = json_body()
    year, month = parse_month_param(body)
    processor = processor_for(body)
    records = processor.parse_records(body)

    report = processor.month(records, year, month)
    return api_response(report.to_dict())


def _metrics_for_staff(body: dict):
    """FTLMetrics for every staff payload in body["staff"] (or the body itself)."""
    anchor = parse_date_param(body.get("anchor_date"), "anchor_date")
    payloads = body.get("staff")
    if payloads is None:
        payloads = [body]
    if not isinstance(payloads, list):
        raise InvalidRecord("staff must be a list")

    processor = processor_for(body)
    metrics_list = []
    for payload in payloads:
        if not isinstance(payload, dict):
            raise InvalidRecord("each staff entry must be an object")
        records = processor.parse_records(payload)
        metrics_list.append(projection_cache.get_or_project(
            records.staff_id, anchor, processor.history_series(records, anchor), limit_table
        ))
    return anchor, metrics_list


@app.route('/api/ftl/alerts', methods=['POST'])
def get_ftl_alerts():
    """
    FTL alerts for one or more staff members.

    Body:
        anchor_date, staff: [{staff_id, duty_entries, ...}], options
        level: optional filter (warning | critical)
        rank_by: optional limit name for a top-20 ranking
    """
    body = json_body()
    anchor, metrics_list = _metrics_for_staff(body)

    alerts = generate_ftl_alerts(metrics_list)
    level = (body.get("level") or "").lower()
    if level:
        try:
            severity = AlertSeverity(level)
        except ValueError:
            raise InvalidRecord(f"level must be warning or critical, got {level!r}")
        alerts = [a for a in alerts if a.severity is severity]

    data = {
        "anchor_date": anchor.isoformat(),
        "total_staff": len(metrics_list),
        "total_alerts": len(alerts),
        "summary": summarize_alerts(alerts),
        "alerts": [a.to_dict() for a in alerts],
    }
    rank_by = body.get("rank_by")
    if rank_by:
        top = get_top_high_intensity_staff(metrics_list, rank_by, limit=20)
        data["top"] = [
            {"staff_id": m.staff_id, "percentage": m[rank_by].percentage, "tier": m[rank_by].tier.value}
            for m in top
        ]
    return api_response(data)


@app.route('/api/ftl/export', methods=['POST'])
def export_ftl():
    """
    Export FTL data as a file.

    Query params:
        format: csv | xlsx | pdf (default csv)
        view: metrics | month | alerts (default metrics)
    """
    fmt = request.args.get('format', 'csv').lower()
    view = request.args.get('view', 'metrics').lower()
    if fmt not in EXPORT_FORMATS:
        return api_response(error=f"Unsupported format {fmt!r}", status=400)

    body = json_body()

    if view == "month":
        year, month = parse_month_param(body)
        processor = processor_for(body)
        records = processor.parse_records(body)
        content = export_month_breakdown(processor.month(records, year, month), fmt)
        filename = f"duty_log_{records.staff_id or 'staff'}_{year:04d}-{month:02d}.{fmt}"
    elif view == "alerts":
        anchor, metrics_list = _metrics_for_staff(body)
        content = export_alerts(generate_ftl_alerts(metrics_list), fmt)
        filename = f"ftl_alerts_{anchor.isoformat()}.{fmt}"
    elif view == "metrics":
        anchor, metrics_list = _metrics_for_staff(body)
        content = export_ftl_metrics(metrics_list, fmt)
        filename = f"ftl_report_{anchor.isoformat()}.{fmt}"
    else:
        return api_response(error=f"Unsupported view {view!r}", status=400)

    return Response(
        content,
        mimetype=CONTENT_TYPES[fmt],
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


# =========================================================
# Error Handlers
# =========================================================

@app.errorhandler(FTLError)
def ftl_error(e):
    logger.warning(f"{request.method} {request.path} rejected: {e}")
    return api_response(error=str(e), status=400)


@app.errorhandler(404)
def not_found(e):
    return api_response(error="Not found", status=404)


@app.errorhandler(405)
def method_not_allowed(e):
    return api_response(error="Method not allowed", status=405)


@app.errorhandler(500)
def server_error(e):
    logger.error(f"Unhandled error on {request.path}: {getattr(e, 'original_exception', e)}")
    return api_response(error="Internal server error", status=500)


# =========================================================
# Main Entry Point
# =========================================================

if __name__ == '__main__':
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_DEBUG", "0") == "1"

    print("="*60)
    print(f"{SERVICE_NAME} - API Server")
    print("="*60)
    print(f"Port: {port}")
    print(f"Debug: {debug}")
    print(f"Limits: {', '.join(limit_table.names)}")
    print("="*60)

    app.run(
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
        debug=debug
    )
