import json
import re
from datetime import datetime, timezone


def now_iso():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


_ws_re = re.compile(r"\s+")


def normalize_text(s):
    if s is None:
        return ""
    s = str(s).strip()
    s = _ws_re.sub(" ", s)
    return s


def name_of(value):
    """Accept either ``{"name": ...}`` or a bare string and return the name."""
    if isinstance(value, dict):
        value = value.get("name")
    if value is None:
        return None
    return str(value)


def json_dumps(obj):
    return json.dumps(obj, ensure_ascii=False, indent=2)
