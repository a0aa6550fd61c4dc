"""
Tolerant (de)serialization for JSON blobs persisted in text columns.

Corrupt or wrongly-shaped values never raise: they degrade to an empty
object or list so a single bad record cannot break an evaluation.
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True, mode="json", exclude_none=True)
    return str(value)


def dump_json(value: Any) -> str:
    return json.dumps(value, default=_default)


def _decode(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def load_json_object(raw: Any) -> Dict[str, Any]:
    """Decode ``raw`` into a dict, falling back to ``{}``."""
    value = _decode(raw)
    return dict(value) if isinstance(value, dict) else {}


def load_json_list(raw: Any) -> List[Any]:
    """Decode ``raw`` into a list, falling back to ``[]``."""
    value = _decode(raw)
    return list(value) if isinstance(value, list) else []
