"""
Fiscal Quarters - Cloud Function Entry Points
=============================================

JSON HTTP endpoints over the quarter boundary calculator and classifier.

Security: API key validation on every HTTP request.
Features: batch quarters/dates, company fiscal calendars, business-day mode,
correlation ID, structured logging.
"""

import hmac
import json
import logging
import os
import uuid
from datetime import datetime
from functools import lru_cache

from pydantic import ValidationError

from fiscal_quarters.boundary import quarter_boundaries
from fiscal_quarters.classifier import FiscalQuarterClassifier, quarters_of
from fiscal_quarters.dates import resolve_fiscal_year_end
from fiscal_quarters.models import BoundaryRequest, BusinessDayConstraint, ClassifyRequest

# ─────────────────────────────────────────────────────────
# Structured JSON logging
# ─────────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """JSON log formatter for Cloud Logging."""
    def format(self, record):
        log_entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "timestamp": self.formatTime(record),
        }
        if hasattr(record, 'correlation_id'):
            log_entry["correlation_id"] = record.correlation_id
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


handler = logging.StreamHandler()
handler.setFormatter(StructuredFormatter())
logging.basicConfig(level=logging.INFO, handlers=[handler])
logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────
# Security helpers
# ─────────────────────────────────────────────────────────

def _verify_api_key(request) -> bool:
    """
    Verify X-API-Key header against configured secret.
    Key is stored in QUARTERS_API_KEY env var (set via Secret Manager).
    """
    expected = os.environ.get('QUARTERS_API_KEY')
    if not expected:
        logger.warning("QUARTERS_API_KEY not set - running in INSECURE dev mode")
        return True
    provided = request.headers.get('X-API-Key', '')
    return hmac.compare_digest(provided, expected)


def _make_response(body: dict, status: int, correlation_id: str = None):
    """Build JSON response with proper headers."""
    if correlation_id:
        body["correlation_id"] = correlation_id
    return (
        json.dumps(body, default=str),
        status,
        {
            'Content-Type': 'application/json',
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Methods': 'POST, OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type, X-API-Key',
        },
    )


def _handle_cors(request):
    """Handle CORS preflight requests."""
    if request.method == 'OPTIONS':
        return _make_response({}, 204)
    return None


def _read_json(request, correlation_id: str):
    """Return (data, error_response) for a JSON request body."""
    if 'application/json' not in (request.content_type or ''):
        return None, _make_response(
            {"error": "Content-Type must be application/json"}, 400, correlation_id)
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return None, _make_response({"error": "Empty or invalid JSON body"}, 400, correlation_id)
    return data, None


def _validation_message(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
        for err in e.errors()
    )


# ─────────────────────────────────────────────────────────
# Cached classifier singleton (avoids reloading calendars)
# ─────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _get_classifier():
    """Cached classifier - created once, reused across requests."""
    return FiscalQuarterClassifier()


def _format(value: datetime) -> str:
    return value.isoformat(timespec='seconds')


# ─────────────────────────────────────────────────────────
# HTTP ENDPOINT: Quarter boundaries
# ─────────────────────────────────────────────────────────

def quarter_boundary_http(request):
    """
    HTTP Cloud Function returning the first or last day of fiscal quarters.

    Accepts JSON body:
    {
        "quarters": [1, 2],
        "fiscal_year_end": "2025-06-30",
        "company_id": "us_federal",
        "first_day": true,
        "business_day": true,
        "business_days": {"allowed_weekdays": ["Monday"], "blackout_dates": ["01-01"]}
    }

    business_days implies business-day mode; business_day alone uses the
    company's configured rules, or Monday-Friday without blackouts.
    """
    correlation_id = str(uuid.uuid4())[:8]

    cors = _handle_cors(request)
    if cors:
        return cors

    if not _verify_api_key(request):
        logger.warning("Rejected: invalid API key", extra={'correlation_id': correlation_id})
        return _make_response({"error": "Unauthorized: invalid API key"}, 401, correlation_id)

    try:
        data, error = _read_json(request, correlation_id)
        if error:
            return error

        try:
            req = BoundaryRequest(**{k: v for k, v in data.items()
                                     if k in BoundaryRequest.model_fields})
        except ValidationError as e:
            return _make_response(
                {"error": f"Invalid request: {_validation_message(e)}"}, 400, correlation_id)

        now = datetime.now()
        try:
            fiscal_year_end = req.fiscal_year_end
            constraint = req.business_days
            if req.company_id:
                classifier = _get_classifier()
                if fiscal_year_end is None:
                    fiscal_year_end = classifier.fiscal_year_end_for(now, req.company_id)
                if constraint is None and req.business_day:
                    constraint = classifier.boundary_constraint(req.company_id)
            if constraint is None and req.business_day:
                constraint = BusinessDayConstraint()
            fiscal_year_end = resolve_fiscal_year_end(fiscal_year_end, now)

            boundaries = quarter_boundaries(
                req.quarters,
                fiscal_year_end=fiscal_year_end,
                first_day=req.first_day,
                business_days=constraint,
                now=now,
            )
        except ValueError as e:
            return _make_response({"error": str(e)}, 400, correlation_id)

        logger.info(f"Computed {len(boundaries)} boundary(ies), first_day={req.first_day}, "
                    f"business_day={constraint is not None}, company={req.company_id}",
                    extra={'correlation_id': correlation_id})

        results = [
            {"quarter": q, "boundary": _format(b)}
            for q, b in zip(req.quarters, boundaries)
        ]
        return _make_response({
            "fiscal_year_end": fiscal_year_end.date().isoformat(),
            "first_day": req.first_day,
            "business_day": constraint is not None,
            "results": results,
        }, 200, correlation_id)

    except Exception as e:
        logger.error(f"Unhandled error: {e}", exc_info=True,
                     extra={'correlation_id': correlation_id})
        return _make_response({"error": str(e)}, 500, correlation_id)


# ─────────────────────────────────────────────────────────
# HTTP ENDPOINT: Classify dates into quarters
# ─────────────────────────────────────────────────────────

def quarter_of_http(request):
    """
    HTTP Cloud Function returning the fiscal quarter of each date.

    Accepts JSON body:
    {
        "dates": ["2025-03-15", "2025-11-02"],
        "fiscal_year_end": "2025-12-31",
        "company_id": "us_federal"
    }

    With company_id each date is placed in its own fiscal year and labelled
    (e.g. "Q1-FY2026"). Otherwise dates outside the fiscal year ending on
    fiscal_year_end get "quarter": null. Sending both company_id and
    fiscal_year_end is rejected with 400.
    """
    correlation_id = str(uuid.uuid4())[:8]

    cors = _handle_cors(request)
    if cors:
        return cors

    if not _verify_api_key(request):
        logger.warning("Rejected: invalid API key", extra={'correlation_id': correlation_id})
        return _make_response({"error": "Unauthorized: invalid API key"}, 401, correlation_id)

    try:
        data, error = _read_json(request, correlation_id)
        if error:
            return error

        try:
            req = ClassifyRequest(**{k: v for k, v in data.items()
                                     if k in ClassifyRequest.model_fields})
        except ValidationError as e:
            return _make_response(
                {"error": f"Invalid request: {_validation_message(e)}"}, 400, correlation_id)

        now = datetime.now()
        results = []
        try:
            if req.company_id:
                classifier = _get_classifier()
                for d in req.dates:
                    period = classifier.period(d, req.company_id)
                    results.append({
                        "date": _format(d),
                        "quarter": period.quarter if period else None,
                        "fiscal_year": period.fiscal_year if period else None,
                        "label": period.format_label() if period else None,
                    })
            else:
                quarters = quarters_of(req.dates, req.fiscal_year_end, now=now)
                results = [
                    {"date": _format(d), "quarter": q}
                    for d, q in zip(req.dates, quarters)
                ]
        except ValueError as e:
            return _make_response({"error": str(e)}, 400, correlation_id)

        not_found = sum(1 for r in results if r["quarter"] is None)
        logger.info(f"Classified {len(results)} date(s), not_found={not_found}, "
                    f"company={req.company_id}",
                    extra={'correlation_id': correlation_id})

        return _make_response({
            "classified": len(results),
            "not_found": not_found,
            "results": results,
        }, 200, correlation_id)

    except Exception as e:
        logger.error(f"Unhandled error: {e}", exc_info=True,
                     extra={'correlation_id': correlation_id})
        return _make_response({"error": str(e)}, 500, correlation_id)


# ─────────────────────────────────────────────────────────
# HTTP ENDPOINT: Health check
# ─────────────────────────────────────────────────────────

def health_http(request):
    """Health check endpoint for monitoring."""
    return _make_response({"status": "ok", "version": "1.0"}, 200)
