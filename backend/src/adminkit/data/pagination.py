"""Page arithmetic shared by the query engine and its result model.

Pages are 1-indexed. A page maps onto an inclusive row range
``[(page - 1) * limit, (page - 1) * limit + limit - 1]``.
"""


def row_range(page: int, limit: int) -> tuple[int, int]:
    """Return the inclusive ``(start, end)`` row range for a page."""
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be >= 1")
    start = (page - 1) * limit
    return start, start + limit - 1


def has_more(page: int, limit: int, total: int) -> bool:
    """True when rows exist past the end of this page."""
    return page * limit < total
