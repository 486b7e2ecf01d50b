import pytest

from recipebook.errors import NotFoundError, SchemaCompatibilityError, ValidationError


def test_create_returns_full_recipe(recipes):
    recipe = recipes.create({
        "name": "  Pancakes ",
        "type": "Breakfast",
        "description": "Fluffy",
        "ingredients": [
            {"ingredient": "flour", "amount": 2, "amount_type": "cup"},
            {"ingredient": "egg", "amount": 1},
        ],
        "instructions": [{"instruction": "Mix"}, {"instruction": "Fry"}],
        "cooking_time": {"time": 20, "timeunit": "minutes"},
        "rating": {"rating": 4.5},
    })
    assert recipe["id"] > 0
    assert recipe["name"] == "Pancakes"
    assert recipe["description"] == "Fluffy"
    assert [i["ingredient"] for i in recipe["ingredients"]] == ["flour", "egg"]
    assert [(s["step"], s["instruction"]) for s in recipe["instructions"]] == [(1, "Mix"), (2, "Fry")]
    assert recipe["cooking_time"]["time"] == 20
    assert float(recipe["rating"]["rating"]) == 4.5


def test_validation_rejects_before_writing(recipes):
    with pytest.raises(ValidationError):
        recipes.create({"name": "   "})
    with pytest.raises(ValidationError):
        recipes.create({"name": "Soup", "ingredients": [{"ingredient": ""}]})
    with pytest.raises(ValidationError):
        recipes.create({"name": "Soup", "rating": 7})
    with pytest.raises(ValidationError):
        recipes.create({"name": "Soup", "ingredients": "not a list"})
    assert recipes.count() == 0


def test_update_replaces_the_whole_aggregate(recipes, make_recipe):
    recipe = make_recipe("Soup", [("carrot", 2, None), ("onion", 1, None)], rating=3)
    updated = recipes.update(recipe["id"], {
        "name": "Carrot Soup",
        "ingredients": [{"ingredient": "carrot", "amount": 5}],
        "instructions": [{"instruction": "Boil"}],
    })
    assert updated["name"] == "Carrot Soup"
    assert [i["ingredient"] for i in updated["ingredients"]] == ["carrot"]
    assert [s["instruction"] for s in updated["instructions"]] == ["Boil"]
    assert updated["rating"] is None
    assert updated["cooking_time"] is None


def test_update_missing_recipe(recipes):
    with pytest.raises(NotFoundError):
        recipes.update(999, {"name": "Ghost"})


def test_delete_is_idempotent(recipes, make_recipe, db):
    recipe = make_recipe(
        "Soup", ["carrot"],
        instructions=[{"instruction": "Simmer"}],
        cooking_time={"time": 40, "timeunit": "minutes"},
        rating=4,
    )
    assert len(recipe["instructions"]) == 1 and recipe["cooking_time"] and recipe["rating"]
    assert recipes.delete(recipe["id"]) is True
    assert recipes.get_by_id(recipe["id"]) is None
    assert recipes.delete(recipe["id"]) is False
    for table in ("Ingredients", "Instructions", "CookingTimes", "Ratings"):
        leftovers = db.execute(f"SELECT COUNT(*) AS n FROM {db.table(table)} WHERE id = $1", [recipe["id"]])
        assert leftovers.first()["n"] == 0, table


def test_list_is_paginated_by_name(recipes, make_recipe):
    for name in ("Cake", "Apple Pie", "Bread"):
        make_recipe(name)
    page = recipes.list(page=1, limit=2)
    assert [r["name"] for r in page["results"]] == ["Apple Pie", "Bread"]
    assert "ingredients" not in page["results"][0]
    assert page["pagination"] == {
        "page": 1, "limit": 2, "total": 3, "totalPages": 2, "hasNext": True, "hasPrev": False,
    }
    with pytest.raises(ValidationError):
        recipes.list(page=0)


def test_search_by_name_matches_name_or_type(recipes, make_recipe):
    make_recipe("Lemon Tart", type="Dessert")
    make_recipe("Tomato Soup", type="Starter")
    assert [r["name"] for r in recipes.search_by_name("dess")] == ["Lemon Tart"]
    assert [r["name"] for r in recipes.search_by_name("SOUP")] == ["Tomato Soup"]
    # short queries fall back to the first page of the catalog
    assert len(recipes.search_by_name("t")) == 2


def test_missing_column_refreshes_schema(recipes, db, engine):
    db.schema  # detect while description still exists
    with engine.begin() as conn:
        conn.exec_driver_sql('ALTER TABLE "Names" DROP COLUMN description')
    recipe = recipes.create({"name": "Salad", "description": "Green"})
    assert "description" not in recipe
    assert "description" not in db.schema.optional_columns


def test_missing_column_without_schema_change_is_fatal(recipes, monkeypatch):
    monkeypatch.setattr(type(recipes), "_scalar_values",
                        lambda self, data, replace: {"name": data.name, "spiciness": 3})
    with pytest.raises(SchemaCompatibilityError):
        recipes.create({"name": "Chili"})
