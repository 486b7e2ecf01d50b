from fastapi import Depends

from . import database
from .dialects import DialectAdapter
from .menus import MenuRepository
from .recipes import RecipeRepository
from .search import IngredientSearch
from .shopping import ShoppingListService


def get_db() -> DialectAdapter:
    return database.db


def get_recipes(db: DialectAdapter = Depends(get_db)) -> RecipeRepository:
    return RecipeRepository(db)


def get_search(db: DialectAdapter = Depends(get_db)) -> IngredientSearch:
    return IngredientSearch(db)


def get_menus(db: DialectAdapter = Depends(get_db)) -> MenuRepository:
    return MenuRepository(db)


def get_shopping(db: DialectAdapter = Depends(get_db)) -> ShoppingListService:
    return ShoppingListService(db)
