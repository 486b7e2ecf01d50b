from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, field_validator


class IngredientIn(BaseModel):
    ingredient: str = ""
    amount: Optional[Decimal] = None
    amount_type: Optional[str] = None


class InstructionIn(BaseModel):
    instruction: str = ""
    step: Optional[int] = None


class CookingTimeIn(BaseModel):
    time: Optional[int] = None
    timeunit: Optional[str] = None


class RecipeIn(BaseModel):
    name: str = ""
    type: Optional[str] = None
    description: Optional[str] = None
    meat: Optional[bool] = None
    fish: Optional[bool] = None
    poultry: Optional[bool] = None
    ingredients: List[IngredientIn] = []
    instructions: List[InstructionIn] = []
    cooking_time: Optional[CookingTimeIn] = None
    rating: Optional[Decimal] = None

    @field_validator("rating", mode="before")
    @classmethod
    def unwrap_rating(cls, value):
        # clients send either 4.5 or {"rating": 4.5}
        if isinstance(value, dict):
            return value.get("rating")
        return value


class SearchIn(BaseModel):
    ingredients: List[str] = []
    matchAll: bool = False
    page: int = 1
    limit: int = 15


class MenuIn(BaseModel):
    name: Optional[str] = None
    week_start_date: Optional[date] = None
    week_end_date: Optional[date] = None


class MenuItemIn(BaseModel):
    day_of_week: Optional[int] = None
    recipe_id: Optional[int] = None
    meal_type: str = "dinner"


class ShoppingListIn(BaseModel):
    name: Optional[str] = None


class ShoppingItemIn(BaseModel):
    name: Optional[str] = None
    total_amount: Optional[Decimal] = None
    amount_type: Optional[str] = None
    complete: Optional[bool] = None
