import asyncio
import logging
import math
from typing import Any, Dict, List, Tuple, Union

from script_labs.config import settings
from script_labs.core.errors import AppError, classify_error
from script_labs.database.postgres import Database
from script_labs.modules.labs.schemas import LabCreate, LabListQuery, LabUpdate

logger = logging.getLogger(__name__)

UserId = Union[str, int]

# Only these columns may appear in an UPDATE ... SET clause
ALLOWED_UPDATE_COLUMNS = ("title", "description")

SORT_COLUMNS = {
    "title": "title",
    "description": "description",
    "created_at": "created_at",
    "updated_at": "updated_at",
}
SORT_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}

SELECT_LABS = """
    SELECT * FROM labs
    WHERE user_id = %s
    ORDER BY {order_by}
    LIMIT %s OFFSET %s
"""

SEARCH_LABS = """
    SELECT * FROM labs
    WHERE user_id = %s
      AND (title ILIKE %s OR description ILIKE %s)
    ORDER BY {order_by}
    LIMIT %s OFFSET %s
"""

COUNT_LABS = "SELECT COUNT(*) AS count FROM labs WHERE user_id = %s"

COUNT_SEARCH_LABS = """
    SELECT COUNT(*) AS count FROM labs
    WHERE user_id = %s
      AND (title ILIKE %s OR description ILIKE %s)
"""

SELECT_LAB = "SELECT * FROM labs WHERE id = %s AND user_id = %s"

SELECT_DUPLICATE_LAB = "SELECT id FROM labs WHERE title = %s AND description = %s AND user_id = %s"

INSERT_LAB = """
    INSERT INTO labs (title, description, user_id, created_at, updated_at)
    VALUES (%s, %s, %s, NOW(), NOW())
    RETURNING *
"""

UPDATE_LAB = """
    UPDATE labs
    SET {assignments}
    WHERE id = %s AND user_id = %s
    RETURNING *
"""

DELETE_LAB = "DELETE FROM labs WHERE id = %s AND user_id = %s RETURNING id"


def order_by_clause(sort_by: str, sort_order: str) -> str:
    column = SORT_COLUMNS.get(sort_by, "created_at")
    direction = SORT_DIRECTIONS.get(sort_order, "DESC")
    return f"{column} {direction}, id {direction}"


class LabService:
    """Lab CRUD; every statement is filtered by the owner's user id."""

    def __init__(self, db: Database):
        self.db = db

    def _store_error(self, exc: Exception, message: str) -> AppError:
        if not settings.is_test:
            logger.error("%s: %s", message, exc)
        return classify_error(exc) or AppError(message, 500)

    async def list_labs(self, user_id: UserId, query: LabListQuery) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        """One page of the caller's labs plus pagination totals"""
        owner = str(user_id)
        order_by = order_by_clause(query.sort_by, query.sort_order)
        try:
            if query.search:
                pattern = f"%{query.search}%"
                page_result, count_result = await asyncio.gather(
                    self.db.query(
                        SEARCH_LABS.format(order_by=order_by),
                        (owner, pattern, pattern, query.limit, query.offset),
                    ),
                    self.db.query(COUNT_SEARCH_LABS, (owner, pattern, pattern)),
                )
            else:
                page_result, count_result = await asyncio.gather(
                    self.db.query(
                        SELECT_LABS.format(order_by=order_by),
                        (owner, query.limit, query.offset),
                    ),
                    self.db.query(COUNT_LABS, (owner,)),
                )
        except AppError:
            raise
        except Exception as e:
            raise self._store_error(e, "Failed to fetch labs") from e

        total = int(count_result.rows[0]["count"]) if count_result.rows else 0
        pagination = {
            "page": query.page,
            "limit": query.limit,
            "total": total,
            "totalPages": math.ceil(total / query.limit),
        }
        return page_result.rows, pagination

    async def get_lab(self, lab_id: int, user_id: UserId) -> Dict[str, Any]:
        try:
            result = await self.db.query(SELECT_LAB, (lab_id, str(user_id)))
        except Exception as e:
            raise self._store_error(e, "Failed to fetch lab") from e

        if not result.rows:
            raise AppError("lab not found", 404)
        return result.rows[0]

    async def create_lab(self, lab: LabCreate, user_id: UserId) -> Dict[str, Any]:
        """Insert a lab unless the caller already has one with the same title and description.

        The pre-check only gives a friendlier 409; the unique constraint on
        (title, description, user_id) still rejects a concurrent duplicate.
        """
        owner = str(user_id)
        try:
            existing = await self.db.query(SELECT_DUPLICATE_LAB, (lab.title, lab.description, owner))
            if existing.rows:
                raise AppError("Lab with this title and description already exists", 409)

            result = await self.db.query(INSERT_LAB, (lab.title, lab.description, owner))
        except AppError:
            raise
        except Exception as e:
            raise self._store_error(e, "Failed to add lab") from e
        return result.rows[0]

    async def update_lab(self, lab_id: int, lab: LabUpdate, user_id: UserId) -> Dict[str, Any]:
        fields = lab.model_dump(exclude_unset=True)
        assignments = []
        values: List[Any] = []
        for column in ALLOWED_UPDATE_COLUMNS:
            if column in fields:
                assignments.append(f"{column} = %s")
                values.append(fields[column])

        if not assignments:
            raise AppError("No valid fields to update", 400)

        assignments.append("updated_at = NOW()")
        values.extend([lab_id, str(user_id)])

        try:
            result = await self.db.query(UPDATE_LAB.format(assignments=", ".join(assignments)), values)
        except Exception as e:
            raise self._store_error(e, "Failed to update lab") from e

        if not result.rows:
            raise AppError("lab not found or unauthorized", 404)
        return result.rows[0]

    async def delete_lab(self, lab_id: int, user_id: UserId) -> Dict[str, Any]:
        try:
            result = await self.db.query(DELETE_LAB, (lab_id, str(user_id)))
        except Exception as e:
            raise self._store_error(e, "Failed to delete lab") from e

        if not result.rows:
            raise AppError("lab not found or unauthorized", 404)
        return {"id": result.rows[0]["id"]}
