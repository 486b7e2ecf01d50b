from fastapi import APIRouter, Depends

from ..deps import get_recipes, get_search
from ..recipes import RecipeRepository
from ..schemas import SearchIn
from ..search import IngredientSearch

router = APIRouter(prefix="/search", tags=["search"])


@router.post("/by-ingredients", response_model=dict)
def search_by_ingredients(data: SearchIn, search: IngredientSearch = Depends(get_search)):
    return search.search_by_ingredients(data.ingredients, data.matchAll, data.page, data.limit)


@router.get("/suggestions", response_model=list)
def suggestions(q: str = "", limit: int = 10, search: IngredientSearch = Depends(get_search)):
    return search.suggest_ingredients(q, limit)


@router.get("/recipes", response_model=list)
def search_recipes(q: str = "", limit: int = 20, repo: RecipeRepository = Depends(get_recipes)):
    return repo.search_by_name(q, limit)
