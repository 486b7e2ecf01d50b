import logging
import logging.config

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOGGING_CONFIG
from .database import Base, engine
from .errors import (
    AggregationPreconditionError,
    CatalogError,
    IdentifierExhaustionError,
    NotFoundError,
    QueryTimeoutError,
    SchemaCompatibilityError,
    TransportError,
    ValidationError,
)
from . import models  # noqa: F401  registers the tables on Base.metadata
from .routers.menus import router as menus_router
from .routers.recipes import router as recipes_router
from .routers.search import router as search_router
from .routers.shopping_lists import router as shopping_lists_router

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Recipe Book", version="0.3.0")

STATUS_CODES = (
    (ValidationError, 400),
    (AggregationPreconditionError, 400),
    (NotFoundError, 404),
    (QueryTimeoutError, 504),
    (TransportError, 503),
    (SchemaCompatibilityError, 500),
    (IdentifierExhaustionError, 500),
)


@app.exception_handler(CatalogError)
async def catalog_error(request: Request, exc: CatalogError):
    status_code = next((code for kind, code in STATUS_CODES if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=status_code)


@app.get("/health")
def health():
    return JSONResponse({"status": "ok"})

# mount routers
app.include_router(recipes_router)
app.include_router(search_router)
app.include_router(menus_router)
app.include_router(shopping_lists_router)
