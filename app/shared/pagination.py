"""Pagination utilities."""

from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100


def clamp_limit(limit: int | None, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    """Clamp a requested page size into ``[1, maximum]``.

    ``None`` selects ``default``. Zero and negative values are clamped up to 1
    rather than rejected, so a client asking for "no messages" still gets the
    newest one.
    """
    if limit is None:
        limit = default
    return min(maximum, max(1, int(limit)))


class CursorParams(BaseModel):
    """Keyset pagination parameters.

    ``cursor`` is an exclusive upper bound on the id column; ``None`` starts
    from the newest row.
    """

    cursor: int | None = Field(default=None, description="Exclusive upper bound id")
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, description="Page size")


async def paginate_backward(
    db: AsyncSession,
    query: Select,
    id_column: ColumnElement,
    params: CursorParams,
) -> dict[str, Any]:
    """
    Fetch one page of rows older than ``params.cursor``.

    Rows are selected newest-first with ``id < cursor`` and then reversed, so the
    returned items are in ascending id order. Inserts that happen between page
    requests never shift the window because the bound is an id, not an offset.

    Args:
        db: Database session
        query: SQLAlchemy select query, already filtered to the collection
        id_column: Monotonic id column used as the cursor
        params: Cursor and page size

    Returns:
        Dictionary with ``items`` and ``next_cursor`` (``None`` on an empty page)
    """
    if params.cursor is not None:
        query = query.where(id_column < params.cursor)

    result = await db.execute(query.order_by(id_column.desc()).limit(params.limit))
    rows = list(result.scalars().all())

    next_cursor = getattr(rows[-1], id_column.key) if rows else None
    rows.reverse()

    return {"items": rows, "next_cursor": next_cursor}
