"""
Pagination of in-memory collections for the read endpoints.
"""

import math
from typing import Any, Dict, Sequence


def total_pages(total: int, limit: int) -> int:
    """Number of pages for ``total`` rows; an empty collection still has one page."""
    if limit < 1:
        raise ValueError("limit must be at least 1")
    return max(1, math.ceil(total / limit))


def paginate(rows: Sequence[Any], page: int = 1, limit: int = 25) -> Dict[str, Any]:
    """
    Slice ``rows`` for one 1-based page.

    Args:
        rows: Full collection
        page: Requested page (values below 1 are treated as 1)
        limit: Page size, at least 1

    Returns:
        Dict with data, total, page and totalPages
    """
    page = max(1, page)
    total = len(rows)
    start = (page - 1) * limit

    return {
        "data": list(rows[start : start + limit]),
        "total": total,
        "page": page,
        "totalPages": total_pages(total, limit),
    }
