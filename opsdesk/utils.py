"""
OpsDesk - Request Utilities
Safe parsing helpers for request parameters and payloads
"""
import json
import math
import re
from datetime import datetime, timezone

from opsdesk.exceptions import ValidationError


NO_STORE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, max-age=0',
    'Pragma': 'no-cache',
    'Expires': '0',
}


def safe_int(value, default=0, min_val=None, max_val=None):
    """
    Safely parse an integer from a request parameter.

    Args:
        value: The value to parse (string or None)
        default: Default value if parsing fails
        min_val: Minimum allowed value (optional)
        max_val: Maximum allowed value (optional)

    Returns:
        int: Parsed integer or default
    """
    try:
        result = int(value) if value is not None else default
    except (ValueError, TypeError):
        result = default

    if result is None:
        return None
    if min_val is not None:
        result = max(result, min_val)
    if max_val is not None:
        result = min(result, max_val)

    return result


def clamp_int(value, min_val, max_val):
    """
    Parse a loosely-typed number into an int clamped to [min_val, max_val].

    Floats and numeric strings are truncated toward zero ("4.7" -> 4).
    Anything unparseable becomes min_val.
    """
    if isinstance(value, bool):
        value = int(value)
    try:
        if isinstance(value, str):
            match = re.match(r'\s*([-+]?\d+)', value)
            if not match:
                return min_val
            result = int(match.group(1))
        else:
            as_float = float(value)
            if math.isnan(as_float) or math.isinf(as_float):
                return min_val
            result = int(as_float)
    except (ValueError, TypeError):
        return min_val
    return max(min_val, min(max_val, result))


def safe_bool(value, default=False):
    """
    Safely parse a boolean from a request parameter.
    Accepts: true, false, 1, 0, yes, no (case insensitive)
    """
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')

    return bool(value)


def parse_datetime(value):
    """Parse an ISO-8601 string (with optional trailing Z); None when empty or invalid"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    # Stored as naive UTC like every other timestamp column
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def isoformat(value):
    return value.isoformat() if value else None


def safe_json_loads(value, default=None):
    """Safely parse JSON, returning default if None or invalid"""
    if default is None:
        default = []
    if not value:
        return default
    if isinstance(value, (list, dict)):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


def get_pagination_params(request, default_limit=20, max_limit=100):
    """
    Get pagination parameters from request.

    Returns:
        tuple: (limit, offset, page)
    """
    limit = safe_int(request.args.get('limit'), default_limit, min_val=1, max_val=max_limit)
    page = safe_int(request.args.get('page'), 1, min_val=1)
    offset = (page - 1) * limit
    return limit, offset, page


def get_json_body(request) -> dict:
    """JSON object body of the request; missing body is empty, anything else non-object is a 400"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# ============================================
# Name normalization (asset / task dedupe)
# ============================================

def norm(value):
    """Lowercase, collapse whitespace, trim"""
    return re.sub(r'\s+', ' ', str(value or '')).lower().strip()


def asset_key(asset_type, name):
    """Identity of a site asset across packages: 'type::name' normalized"""
    return f"{norm(asset_type)}::{norm(name)}"


def strip_task_suffix(value):
    return re.sub(r'\s*task\s*$', '', str(value or ''), flags=re.IGNORECASE).strip()


def normalize_for_dedupe(value):
    """'Facebook Page Task - 2' -> 'facebook page'"""
    without_counter = re.sub(r'\s*-\s*\d+$', '', str(value or '')).strip()
    return norm(strip_task_suffix(without_counter))


def round_half_up(value):
    return int(math.floor(value + 0.5))
