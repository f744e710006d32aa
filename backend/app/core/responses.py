"""Response envelopes shared by list endpoints.

List endpoints return ``{"items": [...], "total": n}``; paged endpoints add
``page``, ``limit`` and ``pages``.
"""

import math
from typing import Optional


def list_response(items: list, total: Optional[int] = None, **extra) -> dict:
    """Wrap a list in the standard envelope, merging any extra top-level keys."""
    body = {
        "items": items,
        "total": total if total is not None else len(items),
    }
    body.update(extra)
    return body


def page_response(items: list, total: int, page: int = 1, limit: int = 20) -> dict:
    """Wrap one page of results."""
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }
