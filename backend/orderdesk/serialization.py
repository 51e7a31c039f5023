from __future__ import annotations

from decimal import Decimal
from typing import Optional


def decimal_to_str(value) -> Optional[str]:
    """Render Numeric columns as fixed two-decimal strings for JSON."""
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(Decimal("0.01")))
