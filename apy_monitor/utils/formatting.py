from __future__ import annotations

from typing import Optional


def format_tvl(tvl: Optional[float]) -> str:
    """TVL in millions, e.g. `$12.3M`. Missing or zero TVL renders as `N/A`."""
    if not tvl:
        return "N/A"
    return f"${tvl / 1_000_000:.1f}M"
