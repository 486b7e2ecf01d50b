from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint, func,
)
from .database import Base

# Dependent tables reuse the recipe id as their "id" column; here it is a real
# foreign key with cascade delete.

class Recipe(Base):
    __tablename__ = "Names"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meat: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    fish: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    poultry: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class Ingredient(Base):
    __tablename__ = "Ingredients"
    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    id: Mapped[int] = mapped_column(Integer, ForeignKey("Names.id", ondelete="CASCADE"), index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    amount_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ingredient: Mapped[str] = mapped_column(String(255), index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class Instruction(Base):
    __tablename__ = "Instructions"
    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    id: Mapped[int] = mapped_column(Integer, ForeignKey("Names.id", ondelete="CASCADE"), index=True)
    step: Mapped[int] = mapped_column(Integer)
    instruction: Mapped[str] = mapped_column(Text)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class CookingTime(Base):
    __tablename__ = "CookingTimes"
    id: Mapped[int] = mapped_column(Integer, ForeignKey("Names.id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    time: Mapped[int] = mapped_column(Integer)
    timeunit: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class Rating(Base):
    __tablename__ = "Ratings"
    id: Mapped[int] = mapped_column(Integer, ForeignKey("Names.id", ondelete="CASCADE"), primary_key=True, autoincrement=False)
    rating: Mapped[Decimal] = mapped_column(Numeric(3, 2))
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("rating >= 0 AND rating <= 5", name="ck_rating_range"),)

class WeeklyMenu(Base):
    __tablename__ = "WeeklyMenus"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    week_start_date: Mapped[date] = mapped_column(Date)
    week_end_date: Mapped[date] = mapped_column(Date)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class MenuItem(Base):
    __tablename__ = "MenuItems"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    menu_id: Mapped[int] = mapped_column(Integer, ForeignKey("WeeklyMenus.id", ondelete="CASCADE"))
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0=Sunday..6=Saturday
    recipe_id: Mapped[int] = mapped_column(Integer)
    meal_type: Mapped[str] = mapped_column(String(50), default="dinner", server_default="dinner")
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("menu_id", "day_of_week", "meal_type", name="uq_menu_slot"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_day_of_week"),
    )

class ShoppingList(Base):
    __tablename__ = "ShoppingLists"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    menu_id: Mapped[int] = mapped_column(Integer, ForeignKey("WeeklyMenus.id", ondelete="CASCADE"))
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class ShoppingListItem(Base):
    __tablename__ = "ShoppingListItems"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shopping_list_id: Mapped[int] = mapped_column(Integer, ForeignKey("ShoppingLists.id", ondelete="CASCADE"))
    ingredient: Mapped[str] = mapped_column(String(255))
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    amount_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_purchased: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    random_id: Mapped[str] = mapped_column(String(32), unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

