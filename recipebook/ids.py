"""Recipe identifier strategies.

Most installations let the database assign recipe ids. Some legacy tables
were created without an auto-increment default; for those the next id is
allocated here by scanning the current maximum across every recipe table
variant and checking the candidate is free before it is used.
"""
import logging
from typing import Any, Dict, List

from .config import ID_ALLOCATION_MAX_ATTEMPTS
from .errors import IdentifierExhaustionError, QueryError

logger = logging.getLogger(__name__)


class IdentifierAllocator:
    def __init__(self, db, max_attempts: int = ID_ALLOCATION_MAX_ATTEMPTS):
        self.db = db
        self.max_attempts = max_attempts

    def next_recipe_id(self, executor) -> int:
        tables = self.db.recipe_tables()
        highest = 0
        for table in tables:
            row = executor.execute(f"SELECT COALESCE(MAX(id), 0) AS max_id FROM {table}").first()
            highest = max(highest, int(row["max_id"] or 0))

        candidate = highest + 1
        for _ in range(self.max_attempts):
            if not self._taken(executor, tables, candidate):
                return candidate
            logger.warning("Recipe id %s already in use, trying the next one", candidate)
            candidate += 1
        raise IdentifierExhaustionError(
            f"No free recipe id after {self.max_attempts} attempts (last tried {candidate - 1})"
        )

    def _taken(self, executor, tables: List[str], candidate: int) -> bool:
        for table in tables:
            if executor.execute(f"SELECT 1 AS taken FROM {table} WHERE id = $1", [candidate]).rows:
                return True
        return False


class NativeIds:
    """The backend assigns the id."""

    def __init__(self, db):
        self.db = db

    def insert_recipe(self, executor, values: Dict[str, Any]) -> int:
        columns = list(values)
        marks = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        result = executor.execute(
            f"INSERT INTO {self.db.table('Name')} ({', '.join(columns)}) VALUES ({marks}) RETURNING id",
            list(values.values()),
        )
        if not result.generated_id:
            raise QueryError("Recipe insert did not report a generated id")
        return int(result.generated_id)


class AllocatedIds(NativeIds):
    """The id is computed by IdentifierAllocator and written explicitly."""

    def __init__(self, db, allocator: IdentifierAllocator = None):
        super().__init__(db)
        self.allocator = allocator or IdentifierAllocator(db)

    def insert_recipe(self, executor, values: Dict[str, Any]) -> int:
        recipe_id = self.allocator.next_recipe_id(executor)
        columns = ["id"] + list(values)
        marks = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        executor.execute(
            f"INSERT INTO {self.db.table('Name')} ({', '.join(columns)}) VALUES ({marks})",
            [recipe_id] + list(values.values()),
        )
        return recipe_id


def id_strategy(db):
    if db.schema.native_ids:
        return NativeIds(db)
    return AllocatedIds(db)
