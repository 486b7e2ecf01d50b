from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_menus, get_shopping
from ..menus import MenuRepository
from ..schemas import MenuIn, MenuItemIn, ShoppingListIn
from ..shopping import ShoppingListService

router = APIRouter(prefix="/menus", tags=["menus"])


@router.get("", response_model=list)
def list_menus(menus: MenuRepository = Depends(get_menus)):
    return menus.list_menus()


@router.post("", response_model=dict, status_code=201)
def create_menu(data: MenuIn, menus: MenuRepository = Depends(get_menus)):
    return menus.create_menu(data.name, data.week_start_date, data.week_end_date)


@router.get("/active", response_model=dict)
def active_menu(menus: MenuRepository = Depends(get_menus)):
    menu = menus.get_active()
    if not menu:
        raise HTTPException(404, "No active menu found")
    return menu


@router.get("/{mid}", response_model=dict)
def get_menu(mid: int, menus: MenuRepository = Depends(get_menus)):
    menu = menus.get_menu(mid)
    if not menu:
        raise HTTPException(404, "Menu not found")
    return menu


@router.put("/{mid}", response_model=dict)
def update_menu(mid: int, data: MenuIn, menus: MenuRepository = Depends(get_menus)):
    return menus.update_menu(mid, data.name, data.week_start_date, data.week_end_date)


@router.delete("/{mid}", response_model=dict)
def delete_menu(mid: int, menus: MenuRepository = Depends(get_menus)):
    menus.delete_menu(mid)
    return {"ok": True}


@router.put("/{mid}/active", response_model=dict)
def set_active(mid: int, menus: MenuRepository = Depends(get_menus)):
    return menus.set_active(mid)


@router.post("/{mid}/items", response_model=dict, status_code=201)
def add_item(mid: int, data: MenuItemIn, menus: MenuRepository = Depends(get_menus)):
    return menus.add_item(mid, data.day_of_week, data.recipe_id, data.meal_type)


@router.delete("/{mid}/items/{item_id}", response_model=dict)
def remove_item(mid: int, item_id: int, menus: MenuRepository = Depends(get_menus)):
    menus.remove_item(mid, item_id)
    return {"ok": True}


@router.post("/{mid}/shopping-list", response_model=list, status_code=201)
def generate_shopping_list(mid: int, data: ShoppingListIn | None = None,
                           shopping: ShoppingListService = Depends(get_shopping)):
    return shopping.generate(mid, data.name if data else None)


@router.get("/{mid}/shopping-list", response_model=dict)
def latest_shopping_list(mid: int, shopping: ShoppingListService = Depends(get_shopping)):
    shopping_list = shopping.latest_for_menu(mid)
    if not shopping_list:
        raise HTTPException(404, "No shopping list found for this menu")
    return shopping_list
