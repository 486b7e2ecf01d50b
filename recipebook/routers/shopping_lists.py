from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_shopping
from ..schemas import ShoppingItemIn
from ..shopping import ShoppingListService

router = APIRouter(prefix="/shopping-lists", tags=["shopping-lists"])


@router.get("", response_model=list)
def active_shopping_list(shopping: ShoppingListService = Depends(get_shopping)):
    return shopping.for_active_menu()


@router.post("/items", response_model=dict, status_code=201)
def add_item(data: ShoppingItemIn, shopping: ShoppingListService = Depends(get_shopping)):
    return shopping.add_item(data.name, data.total_amount, data.amount_type)


@router.put("/items/{external_id}", response_model=dict)
def update_item(external_id: str, data: ShoppingItemIn, shopping: ShoppingListService = Depends(get_shopping)):
    return shopping.update_item(external_id, data.name, data.total_amount, data.amount_type, data.complete)


@router.delete("/items/{external_id}", response_model=dict)
def delete_item(external_id: str, shopping: ShoppingListService = Depends(get_shopping)):
    shopping.delete_item(external_id)
    return {"ok": True}


@router.get("/{list_id}", response_model=dict)
def get_list(list_id: int, shopping: ShoppingListService = Depends(get_shopping)):
    shopping_list = shopping.get_list(list_id)
    if not shopping_list:
        raise HTTPException(404, "Shopping list not found")
    return shopping_list


@router.delete("/{list_id}", response_model=dict)
def delete_list(list_id: int, shopping: ShoppingListService = Depends(get_shopping)):
    shopping.delete_list(list_id)
    return {"ok": True}
