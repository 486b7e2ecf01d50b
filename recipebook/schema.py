"""One-time schema detection.

Older installations named the recipe table ``Name`` while newer ones use
``Names``, and only some of them carry the description and category columns
or an auto-incrementing recipe id. All of that is read once from the
database catalog and cached on the adapter.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy import inspect

from .errors import SchemaCompatibilityError

RECIPE_TABLE_VARIANTS = ("Name", "Names")
DEPENDENT_TABLES = ("Ingredients", "Instructions", "CookingTimes", "Ratings")
MENU_TABLES = ("WeeklyMenus", "MenuItems", "ShoppingLists", "ShoppingListItems")
OPTIONAL_RECIPE_COLUMNS = ("description", "meat", "fish", "poultry")
ORDER_KEY = "entry_id"


@dataclass
class SchemaInfo:
    recipe_tables: List[str]
    tables: Dict[str, str] = field(default_factory=dict)
    recipe_columns: Set[str] = field(default_factory=set)
    native_ids: bool = True
    ingredient_order: Optional[str] = None
    instruction_order: Optional[str] = None

    @property
    def recipe_table(self) -> str:
        return self.recipe_tables[0]

    @property
    def optional_columns(self) -> List[str]:
        return [c for c in OPTIONAL_RECIPE_COLUMNS if c in self.recipe_columns]

    def table(self, logical: str) -> str:
        if logical in RECIPE_TABLE_VARIANTS:
            return self.recipe_table
        return self.tables.get(logical, logical)


def detect_schema(adapter) -> SchemaInfo:
    inspector = inspect(adapter.engine)
    # unquoted identifiers fold to lower case on PostgreSQL
    present = {name.lower(): name for name in inspector.get_table_names()}

    recipe_tables = [present[v.lower()] for v in RECIPE_TABLE_VARIANTS if v.lower() in present]
    if not recipe_tables:
        raise SchemaCompatibilityError(
            f"No recipe table found; expected one of {', '.join(RECIPE_TABLE_VARIANTS)}"
        )

    info = SchemaInfo(recipe_tables=recipe_tables)
    for logical in DEPENDENT_TABLES + MENU_TABLES:
        info.tables[logical] = present.get(logical.lower(), logical)

    columns = inspector.get_columns(info.recipe_table)
    info.recipe_columns = {c["name"].lower() for c in columns}
    primary_key = inspector.get_pk_constraint(info.recipe_table).get("constrained_columns") or []
    id_column = next((c for c in columns if c["name"].lower() == "id"), None)
    info.native_ids = id_column is not None and adapter.has_identity_default(id_column, primary_key)

    for logical, attr in (("Ingredients", "ingredient_order"), ("Instructions", "instruction_order")):
        if logical.lower() in present:
            names = {c["name"].lower() for c in inspector.get_columns(info.tables[logical])}
            if ORDER_KEY in names:
                setattr(info, attr, ORDER_KEY)
    return info
