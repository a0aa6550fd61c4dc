"""
Input normalization shared by the catalog, scheduling and evaluation flows.
"""

import math
import re
from typing import Any, Optional

DEFAULT_ENVIRONMENT = "production"


def normalize_version_tag(version_tag: Any) -> str:
    """Lowercase a version tag and reduce it to ``[a-z0-9._-]``."""
    value = str(version_tag if version_tag is not None else "").strip()
    value = re.sub(r"\s+", "-", value)
    value = re.sub(r"[^a-zA-Z0-9._-]", "-", value)
    value = re.sub(r"-+", "-", value)
    return value.strip("-").lower()


def sanitize_environment(environment: Any) -> str:
    if environment is None:
        return DEFAULT_ENVIRONMENT
    value = re.sub(r"[^a-zA-Z0-9-]", "", str(environment).strip()).lower()
    return value or DEFAULT_ENVIRONMENT


def normalize_email(email: Any) -> Optional[str]:
    cleaned = str(email if email is not None else "").strip().lower()
    return cleaned or None


def normalize_weight(weight: Any) -> int:
    """Return a positive integer weight; anything else becomes 1."""
    if isinstance(weight, bool):
        return 1
    try:
        value = int(float(weight))
    except (TypeError, ValueError, OverflowError):
        return 1
    return value if value > 0 else 1


def as_number(value: Any) -> Optional[float]:
    """Coerce a reported metric to a finite float, or ``None`` when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
