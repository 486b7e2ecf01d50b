from collections import defaultdict
from typing import Any, Dict, Iterable, List


class BatchLoader:
    """Fetch the dependent rows of many recipes with one query per table.

    Results are grouped by recipe id. Ingredient and instruction lists keep
    the order the rows were stored in.
    """

    def __init__(self, db):
        self.db = db

    def load(self, executor, recipe_ids: Iterable[int], ingredients: bool = True,
             instructions: bool = False) -> Dict[int, Dict[str, Any]]:
        ids = sorted({int(i) for i in recipe_ids})
        if not ids:
            return {}

        out: Dict[int, Dict[str, Any]] = {
            rid: {"cooking_time": None, "rating": None} for rid in ids
        }
        schema = self.db.schema

        if ingredients:
            order = "id" + (f", {schema.ingredient_order}" if schema.ingredient_order else "")
            grouped = self._grouped(executor, "Ingredients", ids, order)
            for rid in ids:
                out[rid]["ingredients"] = grouped.get(rid, [])

        if instructions:
            order = "id, step" + (f", {schema.instruction_order}" if schema.instruction_order else "")
            grouped = self._grouped(executor, "Instructions", ids, order)
            for rid in ids:
                out[rid]["instructions"] = grouped.get(rid, [])

        for table, key in (("CookingTimes", "cooking_time"), ("Ratings", "rating")):
            for rid, rows in self._grouped(executor, table, ids, "id").items():
                out[rid][key] = rows[0]
        return out

    def _grouped(self, executor, table: str, ids: List[int], order: str) -> Dict[int, List[dict]]:
        predicate, params = self.db.in_clause("id", ids)
        rows = executor.execute(
            f"SELECT * FROM {self.db.table(table)} WHERE {predicate} ORDER BY {order}", params
        ).rows
        grouped: Dict[int, List[dict]] = defaultdict(list)
        for row in rows:
            grouped[int(row["id"])].append(row)
        return grouped
