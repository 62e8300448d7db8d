# --- storefront/utils/api.py ---
from datetime import datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30))


def _envelope(status, message, data):
    now = datetime.now(IST)
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        data = {"items": data}
    return {
        "status": status,
        "message": message,
        "data": {
            **data,
            "API_TIME_HUMAN": now.strftime("%Y-%m-%d %H:%M:%S"),
        },
    }

def api_ok(message, data=None):
    return _envelope(True, message, data)

def api_error(message, data=None):
    return _envelope(False, message, data)
