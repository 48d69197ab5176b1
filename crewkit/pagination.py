import math

from sqlalchemy import func
from sqlmodel import Session, select

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def paginate(session: Session, stmt, page: int, limit: int) -> tuple[list, dict]:
    """Run ``stmt`` for one page and return ``(rows, pagination)``."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = session.exec(count_stmt).one()

    rows = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()

    total_pages = math.ceil(total / limit) if limit else 0
    return list(rows), {
        "page": page,
        "limit": limit,
        "total_count": total,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }
