import os
import tempfile

# The app module binds its engine at import time
os.environ["DATABASE_URL"] = f"sqlite:///{tempfile.mkdtemp(prefix='recipebook-')}/app.db"

import pytest

from recipebook import models  # noqa: F401
from recipebook.database import Base, make_engine
from recipebook.dialects import adapter_for
from recipebook.recipes import RecipeRepository


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Base.metadata.create_all(bind=engine)
    return adapter_for(engine)


@pytest.fixture
def recipes(db):
    return RecipeRepository(db)


@pytest.fixture
def make_recipe(recipes):
    def _make(name, ingredients=(), **extra):
        data = {"name": name, "type": extra.pop("type", "Dinner"), **extra}
        data["ingredients"] = [
            {"ingredient": i[0], "amount": i[1], "amount_type": i[2]} if isinstance(i, tuple) else {"ingredient": i}
            for i in ingredients
        ]
        return recipes.create(data)
    return _make
