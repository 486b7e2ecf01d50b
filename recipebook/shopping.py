"""Shopping lists built from weekly menus.

A recipe scheduled on several days contributes its ingredients once per
slot, so every (ingredient, unit) pair is summed as amount times the number
of slots referencing the recipe.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .dialects import insert_many
from .errors import AggregationPreconditionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ITEM_COLUMNS = ("shopping_list_id", "ingredient", "total_amount", "amount_type", "random_id", "name")
AMOUNT_SCALE = Decimal("0.01")


def new_external_id() -> str:
    return uuid.uuid4().hex


def to_amount(value) -> Optional[Decimal]:
    # scale of the Numeric(10, 2) amount columns
    if value is None:
        return None
    return Decimal(str(value)).quantize(AMOUNT_SCALE)


def format_amount(amount) -> str:
    if amount is None:
        return ""
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def item_label(ingredient: str, amount, unit: Optional[str]) -> str:
    return " ".join(p for p in (ingredient, format_amount(amount), unit or "") if p)


def as_client_item(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": row.get("name") or item_label(row["ingredient"], row.get("total_amount"), row.get("amount_type")),
        "id": row["random_id"],
        "complete": bool(row.get("is_purchased")),
    }


class ShoppingListService:
    def __init__(self, db):
        self.db = db

    # ---------- generation ----------
    def generate(self, menu_id: int, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Aggregate the menu's ingredients into a new shopping list.

        Runs as one transaction: either the list and all of its items are
        stored or nothing is.
        """
        with self.db.transaction() as tx:
            menu = tx.execute(f"SELECT id, name FROM {self.db.table('WeeklyMenus')} WHERE id = $1", [menu_id]).first()
            if menu is None:
                raise NotFoundError(f"Menu {menu_id} not found")
            return self._generate(tx, menu_id, name or "Shopping List")

    def for_active_menu(self) -> List[Dict[str, Any]]:
        """Items of the active menu's list, generating the list on first use."""
        with self.db.transaction() as tx:
            menu = tx.execute(
                f"SELECT id, name FROM {self.db.table('WeeklyMenus')} WHERE active = $1 ORDER BY id DESC LIMIT 1",
                [True],
            ).first()
            if menu is None:
                raise NotFoundError("No active menu found")
            existing = tx.execute(
                f"SELECT sli.* FROM {self.db.table('ShoppingListItems')} sli "
                f"JOIN {self.db.table('ShoppingLists')} sl ON sl.id = sli.shopping_list_id "
                f"WHERE sl.menu_id = $1 ORDER BY sli.ingredient",
                [menu["id"]],
            ).rows
            if existing:
                return [as_client_item(r) for r in existing]
            return self._generate(tx, menu["id"], f"{menu['name'] or 'Menu'} - Shopping List")

    def _generate(self, tx, menu_id: int, name: str) -> List[Dict[str, Any]]:
        slots = tx.execute(
            f"SELECT COUNT(*) AS total FROM {self.db.table('MenuItems')} WHERE menu_id = $1", [menu_id]
        ).first()
        if not int(slots["total"]):
            raise AggregationPreconditionError(f"Menu {menu_id} has no recipes scheduled")

        totals = tx.execute(
            f"SELECT i.ingredient, i.amount_type, SUM(i.amount * rc.recipe_count) AS total_amount "
            f"FROM {self.db.table('Ingredients')} i "
            f"JOIN (SELECT recipe_id, COUNT(*) AS recipe_count FROM {self.db.table('MenuItems')} "
            f"      WHERE menu_id = $1 GROUP BY recipe_id) rc ON i.id = rc.recipe_id "
            f"GROUP BY i.ingredient, i.amount_type "
            f"ORDER BY i.ingredient, i.amount_type",
            [menu_id],
        ).rows

        list_id = tx.execute(
            f"INSERT INTO {self.db.table('ShoppingLists')} (menu_id, name) VALUES ($1, $2) RETURNING id",
            [menu_id, name],
        ).generated_id

        items = []
        for row in totals:
            total = to_amount(row["total_amount"])
            items.append({
                "shopping_list_id": list_id,
                "ingredient": row["ingredient"],
                "total_amount": total,
                "amount_type": row["amount_type"],
                "random_id": new_external_id(),
                "name": item_label(row["ingredient"], total, row["amount_type"]),
                "is_purchased": False,
            })
        insert_many(tx, self.db.table("ShoppingListItems"), ITEM_COLUMNS,
                    [[item[c] for c in ITEM_COLUMNS] for item in items])
        logger.info("Generated shopping list %s for menu %s with %s items", list_id, menu_id, len(items))
        return [as_client_item(item) for item in items]

    # ---------- lists ----------
    def get_list(self, list_id: int) -> Optional[Dict[str, Any]]:
        with self.db.transaction() as tx:
            shopping_list = tx.execute(
                f"SELECT sl.*, wm.name AS menu_name, wm.week_start_date, wm.week_end_date "
                f"FROM {self.db.table('ShoppingLists')} sl "
                f"LEFT JOIN {self.db.table('WeeklyMenus')} wm ON sl.menu_id = wm.id WHERE sl.id = $1",
                [list_id],
            ).first()
            if shopping_list is None:
                return None
            shopping_list["items"] = self._items(tx, list_id)
        return shopping_list

    def latest_for_menu(self, menu_id: int) -> Optional[Dict[str, Any]]:
        with self.db.transaction() as tx:
            shopping_list = tx.execute(
                f"SELECT * FROM {self.db.table('ShoppingLists')} WHERE menu_id = $1 "
                f"ORDER BY created_at DESC, id DESC LIMIT 1",
                [menu_id],
            ).first()
            if shopping_list is None:
                return None
            shopping_list["items"] = self._items(tx, shopping_list["id"])
        return shopping_list

    def delete_list(self, list_id: int) -> None:
        with self.db.transaction() as tx:
            tx.execute(f"DELETE FROM {self.db.table('ShoppingListItems')} WHERE shopping_list_id = $1", [list_id])
            if tx.execute(f"DELETE FROM {self.db.table('ShoppingLists')} WHERE id = $1", [list_id]).rowcount == 0:
                raise NotFoundError(f"Shopping list {list_id} not found")

    def _items(self, executor, list_id: int) -> List[Dict[str, Any]]:
        return executor.execute(
            f"SELECT * FROM {self.db.table('ShoppingListItems')} WHERE shopping_list_id = $1 ORDER BY ingredient",
            [list_id],
        ).rows

    # ---------- items, addressed by external id ----------
    def add_item(self, name: Optional[str], total_amount=None, amount_type: Optional[str] = None) -> Dict[str, Any]:
        if not name or not name.strip():
            raise ValidationError("Item name is required")
        name = name.strip()
        with self.db.transaction() as tx:
            latest = tx.execute(
                f"SELECT sl.id FROM {self.db.table('ShoppingLists')} sl "
                f"JOIN {self.db.table('WeeklyMenus')} wm ON sl.menu_id = wm.id "
                f"WHERE wm.active = $1 ORDER BY sl.created_at DESC, sl.id DESC LIMIT 1",
                [True],
            ).first()
            if latest is None:
                raise NotFoundError("No active shopping list found")
            item = {
                "shopping_list_id": latest["id"],
                "ingredient": name.split(" ")[0],
                "total_amount": to_amount(total_amount),
                "amount_type": amount_type,
                "random_id": new_external_id(),
                "name": name,
            }
            insert_many(tx, self.db.table("ShoppingListItems"), ITEM_COLUMNS, [[item[c] for c in ITEM_COLUMNS]])
        return as_client_item(item)

    def update_item(self, external_id: str, name: Optional[str] = None, total_amount=None,
                    amount_type: Optional[str] = None, complete: Optional[bool] = None) -> Dict[str, Any]:
        items = self.db.table("ShoppingListItems")
        with self.db.transaction() as tx:
            result = tx.execute(
                f"UPDATE {items} SET name = COALESCE($1, name), total_amount = COALESCE($2, total_amount), "
                f"amount_type = COALESCE($3, amount_type), is_purchased = COALESCE($4, is_purchased), "
                f"updated_at = CURRENT_TIMESTAMP WHERE random_id = $5",
                [name, total_amount, amount_type, complete, external_id],
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Shopping list item {external_id} not found")
            row = tx.execute(f"SELECT * FROM {items} WHERE random_id = $1", [external_id]).first()
        return as_client_item(row)

    def delete_item(self, external_id: str) -> None:
        result = self.db.execute(
            f"DELETE FROM {self.db.table('ShoppingListItems')} WHERE random_id = $1", [external_id]
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Shopping list item {external_id} not found")
