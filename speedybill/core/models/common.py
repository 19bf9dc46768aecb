from __future__ import annotations
import math
import uuid
from typing import Any


def gen_id() -> str:
    return str(uuid.uuid4())


def coerce_number(value: Any) -> float:
    """Valeur numérique saisie -> float ; tout ce qui n'est pas un nombre fini vaut 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        v = float(value)
    else:
        s = str(value).strip().replace(",", ".")
        if not s:
            return 0.0
        try:
            v = float(s)
        except ValueError:
            return 0.0
    return v if math.isfinite(v) else 0.0
