import math

from flask import request

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def parse_pagination():
    """Read ?page=&limit= from the query string; returns (page, limit, offset)."""
    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", DEFAULT_LIMIT, type=int) or DEFAULT_LIMIT
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_LIMIT)
    return page, limit, (page - 1) * limit


def pagination_block(page, limit, total):
    total = int(total or 0)
    return {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "total_count": total,
        "per_page": limit,
    }


def like_pattern(term):
    return f"%{term.lower()}%"
