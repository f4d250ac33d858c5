"""
Pagination helpers shared by list endpoints
"""

import math
from typing import Any, Dict

from tableside.core.config import get_settings

settings = get_settings()


def clamp_limit(limit: int) -> int:
    return max(1, min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE))


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def page_metadata(total: int, page: int, limit: int, **extra: Any) -> Dict[str, Any]:
    metadata = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
    metadata.update(extra)
    return metadata
