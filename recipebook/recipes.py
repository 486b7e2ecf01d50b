import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from .config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .dialects import insert_many
from .errors import (
    DUPLICATE_KEY,
    MISSING_COLUMN,
    MISSING_DEFAULT,
    NotFoundError,
    QueryError,
    SchemaCompatibilityError,
    ValidationError,
)
from .ids import id_strategy
from .loader import BatchLoader
from .schema import DEPENDENT_TABLES
from .schemas import RecipeIn

logger = logging.getLogger(__name__)


def check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")


def page_info(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def as_recipe_in(data) -> RecipeIn:
    if isinstance(data, RecipeIn):
        return data
    try:
        return RecipeIn.model_validate(data)
    except ModelValidationError as exc:
        raise ValidationError(f"Invalid recipe: {exc.error_count()} problem(s): {exc.errors()[0]['msg']}")


class RecipeRepository:
    """CRUD over the recipe aggregate.

    A recipe is one row in the recipe table plus the ingredient, instruction,
    cooking time and rating rows that share its id. Writes replace the whole
    aggregate inside one transaction.
    """

    def __init__(self, db, loader: Optional[BatchLoader] = None):
        self.db = db
        self.loader = loader or BatchLoader(db)

    # ---------- validation ----------
    def validate(self, data) -> RecipeIn:
        data = as_recipe_in(data)
        if not data.name or not data.name.strip():
            raise ValidationError("Recipe name is required")
        for item in data.ingredients:
            if not item.ingredient or not item.ingredient.strip():
                raise ValidationError("Every ingredient needs a name")
        for item in data.instructions:
            if not item.instruction or not item.instruction.strip():
                raise ValidationError("Every instruction needs text")
        if data.rating is not None and not (0 <= data.rating <= 5):
            raise ValidationError("Rating must be between 0 and 5")
        return data

    # ---------- writes ----------
    def create(self, data) -> Dict[str, Any]:
        data = self.validate(data)

        def insert() -> int:
            with self.db.transaction() as tx:
                recipe_id = id_strategy(self.db).insert_recipe(tx, self._scalar_values(data, replace=False))
                self._insert_dependents(tx, recipe_id, data)
            return recipe_id

        recipe_id = self._with_schema_fallback(insert)
        logger.info("Created recipe %s (%s)", recipe_id, data.name.strip())

        recipe = self.get_by_id(recipe_id)
        if recipe is None:
            logger.warning("Recipe %s not readable by id after insert, looking it up by name", recipe_id)
            recipe = self._latest_by_name(data.name.strip())
        if recipe is None:
            raise NotFoundError(f"Recipe {recipe_id} could not be read back after it was created")
        return recipe

    def update(self, recipe_id: int, data) -> Dict[str, Any]:
        data = self.validate(data)

        def replace() -> None:
            with self.db.transaction() as tx:
                values = self._scalar_values(data, replace=True)
                sets = [f"{column} = ${i}" for i, column in enumerate(values, start=1)]
                if "updated_at" in self.db.schema.recipe_columns:
                    sets.append("updated_at = CURRENT_TIMESTAMP")
                result = tx.execute(
                    f"UPDATE {self.db.table('Name')} SET {', '.join(sets)} WHERE id = ${len(values) + 1}",
                    list(values.values()) + [recipe_id],
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Recipe {recipe_id} not found")
                self._delete_dependents(tx, recipe_id)
                self._insert_dependents(tx, recipe_id, data)

        self._with_schema_fallback(replace)
        logger.info("Updated recipe %s", recipe_id)
        return self.get_by_id(recipe_id)

    def delete(self, recipe_id: int) -> bool:
        with self.db.transaction() as tx:
            self._delete_dependents(tx, recipe_id)
            removed = tx.execute(f"DELETE FROM {self.db.table('Name')} WHERE id = $1", [recipe_id]).rowcount
        if removed:
            logger.info("Deleted recipe %s", recipe_id)
        return removed > 0

    # ---------- reads ----------
    def get_by_id(self, recipe_id: int) -> Optional[Dict[str, Any]]:
        with self.db.transaction() as tx:
            recipe = tx.execute(f"SELECT * FROM {self.db.table('Name')} WHERE id = $1", [recipe_id]).first()
            if recipe is None:
                return None
            dependents = self.loader.load(tx, [recipe["id"]], instructions=True)
        recipe.update(dependents[int(recipe["id"])])
        return recipe

    def list(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        check_page(page, limit)
        with self.db.transaction() as tx:
            total = self._count(tx)
            rows = tx.execute(
                f"SELECT * FROM {self.db.table('Name')} ORDER BY name ASC LIMIT $1 OFFSET $2",
                [limit, (page - 1) * limit],
            ).rows
            dependents = self.loader.load(tx, [r["id"] for r in rows], ingredients=False)
        for row in rows:
            row.update(dependents[int(row["id"])])
        return {"results": rows, "pagination": page_info(page, limit, total)}

    def count(self) -> int:
        with self.db.transaction() as tx:
            return self._count(tx)

    def search_by_name(self, q: str, limit: int = 20) -> List[Dict[str, Any]]:
        q = (q or "").strip()
        if len(q) < 2:
            return self.list(1, 10)["results"]
        with self.db.transaction() as tx:
            rows = tx.execute(
                f"SELECT * FROM {self.db.table('Name')} "
                f"WHERE LOWER(name) LIKE LOWER($1) OR LOWER(type) LIKE LOWER($1) "
                f"ORDER BY name ASC LIMIT $2",
                [f"%{q}%", limit],
            ).rows
            dependents = self.loader.load(tx, [r["id"] for r in rows])
        for row in rows:
            row.update(dependents[int(row["id"])])
        return rows

    # ---------- helpers ----------
    def _count(self, executor) -> int:
        row = executor.execute(f"SELECT COUNT(*) AS total FROM {self.db.table('Name')}").first()
        return int(row["total"])

    def _latest_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute(
            f"SELECT id FROM {self.db.table('Name')} WHERE name = $1 ORDER BY id DESC LIMIT 1", [name]
        ).first()
        return self.get_by_id(row["id"]) if row else None

    def _scalar_values(self, data: RecipeIn, replace: bool) -> Dict[str, Any]:
        values: Dict[str, Any] = {"name": data.name.strip(), "type": data.type or None}
        for column in self.db.schema.optional_columns:
            value = getattr(data, column)
            if replace or value is not None:
                values[column] = value
        return values

    def _delete_dependents(self, executor, recipe_id: int) -> None:
        for table in DEPENDENT_TABLES:
            executor.execute(f"DELETE FROM {self.db.table(table)} WHERE id = $1", [recipe_id])

    def _insert_dependents(self, executor, recipe_id: int, data: RecipeIn) -> None:
        insert_many(
            executor, self.db.table("Ingredients"), ("id", "amount", "amount_type", "ingredient"),
            [(recipe_id, i.amount, i.amount_type or None, i.ingredient.strip()) for i in data.ingredients],
        )
        insert_many(
            executor, self.db.table("Instructions"), ("id", "step", "instruction"),
            [(recipe_id, i.step if i.step is not None else n, i.instruction.strip())
             for n, i in enumerate(data.instructions, start=1)],
        )
        cooking = data.cooking_time
        if cooking and cooking.time and cooking.timeunit:
            executor.execute(
                f"INSERT INTO {self.db.table('CookingTimes')} (id, time, timeunit) VALUES ($1, $2, $3)",
                [recipe_id, cooking.time, cooking.timeunit],
            )
        if data.rating is not None:
            executor.execute(
                f"INSERT INTO {self.db.table('Ratings')} (id, rating) VALUES ($1, $2)",
                [recipe_id, data.rating],
            )

    def _with_schema_fallback(self, work: Callable[[], Any]) -> Any:
        # Each fallback is tried at most once; the failed transaction has
        # already rolled back when we get here.
        tried = set()
        while True:
            try:
                return work()
            except QueryError as exc:
                if exc.reason in tried:
                    raise
                tried.add(exc.reason)
                if exc.reason == MISSING_COLUMN:
                    before = self.db.schema.optional_columns
                    if self.db.refresh_schema().optional_columns == before:
                        raise SchemaCompatibilityError(
                            f"Recipe table rejected its own columns: {exc.message}", statement=exc.statement
                        ) from exc
                    logger.warning("Recipe columns changed, retrying with %s", self.db.schema.optional_columns)
                elif exc.reason == MISSING_DEFAULT and self.db.schema.native_ids:
                    logger.warning("Recipe id has no automatic default, switching to allocated ids")
                    self.db.schema.native_ids = False
                elif exc.reason == DUPLICATE_KEY and not self.db.schema.native_ids:
                    logger.warning("Allocated recipe id was taken concurrently, allocating again")
                else:
                    raise
