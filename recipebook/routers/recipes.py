from fastapi import APIRouter, Depends, HTTPException

from ..config import DEFAULT_PAGE_SIZE
from ..deps import get_recipes
from ..recipes import RecipeRepository
from ..schemas import RecipeIn

router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.get("", response_model=dict)
def list_recipes(page: int = 1, limit: int = DEFAULT_PAGE_SIZE, repo: RecipeRepository = Depends(get_recipes)):
    return repo.list(page, limit)


@router.post("", response_model=dict, status_code=201)
def create_recipe(data: RecipeIn, repo: RecipeRepository = Depends(get_recipes)):
    return repo.create(data)


@router.get("/{rid}", response_model=dict)
def get_recipe(rid: int, repo: RecipeRepository = Depends(get_recipes)):
    recipe = repo.get_by_id(rid)
    if not recipe:
        raise HTTPException(404, "Recipe not found")
    return recipe


@router.put("/{rid}", response_model=dict)
def update_recipe(rid: int, data: RecipeIn, repo: RecipeRepository = Depends(get_recipes)):
    return repo.update(rid, data)


@router.delete("/{rid}", response_model=dict)
def delete_recipe(rid: int, repo: RecipeRepository = Depends(get_recipes)):
    # deleting a missing recipe is not an error
    return {"ok": True, "deleted": repo.delete(rid)}
