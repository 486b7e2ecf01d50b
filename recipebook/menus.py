import logging
from datetime import date
from typing import Any, Dict, List, Optional

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class MenuRepository:
    """Weekly menus and the recipes scheduled on them."""

    def __init__(self, db):
        self.db = db

    def list_menus(self) -> List[Dict[str, Any]]:
        menus, items = self.db.table("WeeklyMenus"), self.db.table("MenuItems")
        menu_rows = self.db.execute(f"SELECT * FROM {menus} ORDER BY week_start_date DESC, id DESC").rows
        counts = self.db.execute(
            f"SELECT menu_id, COUNT(*) AS recipe_count FROM {items} GROUP BY menu_id"
        ).rows
        by_menu = {int(r["menu_id"]): int(r["recipe_count"]) for r in counts}
        for menu in menu_rows:
            menu["recipe_count"] = by_menu.get(int(menu["id"]), 0)
        return menu_rows

    def get_menu(self, menu_id: int) -> Optional[Dict[str, Any]]:
        with self.db.transaction() as tx:
            menu = tx.execute(f"SELECT * FROM {self.db.table('WeeklyMenus')} WHERE id = $1", [menu_id]).first()
            if menu is None:
                return None
            menu["items"] = tx.execute(
                f"SELECT mi.*, n.name AS recipe_name, n.type AS recipe_type "
                f"FROM {self.db.table('MenuItems')} mi "
                f"LEFT JOIN {self.db.table('Name')} n ON mi.recipe_id = n.id "
                f"WHERE mi.menu_id = $1 ORDER BY mi.day_of_week, mi.meal_type",
                [menu_id],
            ).rows
        return menu

    def create_menu(self, name: Optional[str], week_start_date: Optional[date],
                    week_end_date: Optional[date]) -> Dict[str, Any]:
        self._check_dates(week_start_date, week_end_date)
        result = self.db.execute(
            f"INSERT INTO {self.db.table('WeeklyMenus')} (name, week_start_date, week_end_date) "
            f"VALUES ($1, $2, $3) RETURNING *",
            [name, week_start_date, week_end_date],
        )
        logger.info("Created menu %s", result.generated_id)
        return result.first() or self.get_menu(result.generated_id)

    def update_menu(self, menu_id: int, name: Optional[str], week_start_date: Optional[date],
                    week_end_date: Optional[date]) -> Dict[str, Any]:
        self._check_dates(week_start_date, week_end_date)
        result = self.db.execute(
            f"UPDATE {self.db.table('WeeklyMenus')} "
            f"SET name = $1, week_start_date = $2, week_end_date = $3, updated_at = CURRENT_TIMESTAMP "
            f"WHERE id = $4",
            [name, week_start_date, week_end_date, menu_id],
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Menu {menu_id} not found")
        return self.get_menu(menu_id)

    def delete_menu(self, menu_id: int) -> None:
        # children are removed explicitly for schemas created without cascades
        lists = self.db.table("ShoppingLists")
        with self.db.transaction() as tx:
            tx.execute(
                f"DELETE FROM {self.db.table('ShoppingListItems')} "
                f"WHERE shopping_list_id IN (SELECT id FROM {lists} WHERE menu_id = $1)",
                [menu_id],
            )
            tx.execute(f"DELETE FROM {lists} WHERE menu_id = $1", [menu_id])
            tx.execute(f"DELETE FROM {self.db.table('MenuItems')} WHERE menu_id = $1", [menu_id])
            removed = tx.execute(f"DELETE FROM {self.db.table('WeeklyMenus')} WHERE id = $1", [menu_id]).rowcount
            if removed == 0:
                raise NotFoundError(f"Menu {menu_id} not found")
        logger.info("Deleted menu %s", menu_id)

    def set_active(self, menu_id: int) -> Dict[str, Any]:
        menus = self.db.table("WeeklyMenus")
        with self.db.transaction() as tx:
            tx.execute(f"UPDATE {menus} SET active = $1, updated_at = CURRENT_TIMESTAMP WHERE active = $2", [False, True])
            result = tx.execute(
                f"UPDATE {menus} SET active = $1, updated_at = CURRENT_TIMESTAMP WHERE id = $2", [True, menu_id]
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Menu {menu_id} not found")
            return tx.execute(f"SELECT * FROM {menus} WHERE id = $1", [menu_id]).first()

    def get_active(self) -> Optional[Dict[str, Any]]:
        menu = self.db.execute(
            f"SELECT * FROM {self.db.table('WeeklyMenus')} WHERE active = $1 ORDER BY created_at DESC, id DESC LIMIT 1",
            [True],
        ).first()
        if menu is not None:
            menu["recipe_count"] = int(self.db.execute(
                f"SELECT COUNT(*) AS total FROM {self.db.table('MenuItems')} WHERE menu_id = $1", [menu["id"]]
            ).first()["total"])
        return menu

    def add_item(self, menu_id: int, day_of_week: Optional[int], recipe_id: Optional[int],
                 meal_type: str = "dinner") -> Dict[str, Any]:
        if day_of_week is None or not recipe_id:
            raise ValidationError("Day of week and recipe ID are required")
        if day_of_week < 0 or day_of_week > 6:
            raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")
        meal_type = meal_type or "dinner"
        items = self.db.table("MenuItems")
        upsert = self.db.on_conflict_update(("menu_id", "day_of_week", "meal_type"), ("recipe_id",))
        with self.db.transaction() as tx:
            if tx.execute(f"SELECT id FROM {self.db.table('WeeklyMenus')} WHERE id = $1", [menu_id]).first() is None:
                raise NotFoundError(f"Menu {menu_id} not found")
            tx.execute(
                f"INSERT INTO {items} (menu_id, day_of_week, recipe_id, meal_type) VALUES ($1, $2, $3, $4) {upsert}",
                [menu_id, day_of_week, recipe_id, meal_type],
            )
            return tx.execute(
                f"SELECT * FROM {items} WHERE menu_id = $1 AND day_of_week = $2 AND meal_type = $3",
                [menu_id, day_of_week, meal_type],
            ).first()

    def remove_item(self, menu_id: int, item_id: int) -> None:
        result = self.db.execute(
            f"DELETE FROM {self.db.table('MenuItems')} WHERE id = $1 AND menu_id = $2", [item_id, menu_id]
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Menu item {item_id} not found")

    @staticmethod
    def _check_dates(start: Optional[date], end: Optional[date]) -> None:
        if not start or not end:
            raise ValidationError("Week start date and end date are required")
        if end < start:
            raise ValidationError("Week end date must not be before its start date")
