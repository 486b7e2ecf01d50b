import logging
import string
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_PAGE_SIZE, SEARCH_TIMEOUT_SECONDS
from .errors import ValidationError
from .loader import BatchLoader
from .recipes import check_page, page_info

logger = logging.getLogger(__name__)


# SQLite's LOWER() folds ASCII letters only
_ASCII_FOLD = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def normalize_terms(terms: Iterable[Any]) -> List[str]:
    """Trim, ASCII-lowercase and de-duplicate search terms.

    The statements lower both sides with the backend's own LOWER(), so a
    term matches exactly what the backend folds it to.
    """
    out: List[str] = []
    for term in terms or []:
        term = str(term).strip().translate(_ASCII_FOLD)
        if term and term not in out:
            out.append(term)
    return out


class IngredientSearch:
    """Find recipes by ingredient name fragments.

    Every term is a case-insensitive substring match against the ingredient
    column. With ``match_all`` a recipe qualifies only when each term is
    matched by at least one of its ingredient rows; otherwise one matching
    row for any term is enough.
    """

    def __init__(self, db, loader: Optional[BatchLoader] = None, timeout: float = SEARCH_TIMEOUT_SECONDS):
        self.db = db
        self.loader = loader or BatchLoader(db)
        self.timeout = timeout

    def search_by_ingredients(self, terms, match_all: bool = False, page: int = 1,
                              limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        terms = normalize_terms(terms)
        if not terms:
            raise ValidationError("At least one ingredient is required")
        check_page(page, limit)

        where, params = self._predicate(terms, match_all)
        recipes = self.db.table("Name")
        logger.debug("Ingredient search %s (match_all=%s) page %s", terms, match_all, page)

        with self.db.transaction(timeout=self.timeout) as tx:
            total = int(tx.execute(f"SELECT COUNT(*) AS total FROM {recipes} r WHERE {where}", params).first()["total"])
            n = len(params)
            rows = tx.execute(
                f"SELECT r.* FROM {recipes} r WHERE {where} ORDER BY r.name ASC LIMIT ${n + 1} OFFSET ${n + 2}",
                params + [limit, (page - 1) * limit],
            ).rows
            dependents = self.loader.load(tx, [r["id"] for r in rows])

        for row in rows:
            row.update(dependents[int(row["id"])])
            names = [(i["ingredient"] or "").lower() for i in row["ingredients"]]
            row["matched_terms"] = [t for t in terms if any(t.lower() in name for name in names)]

        return {
            "query": {"ingredients": terms, "matchAll": match_all},
            "results": rows,
            "pagination": page_info(page, limit, total),
        }

    def _predicate(self, terms: List[str], match_all: bool) -> Tuple[str, List[Any]]:
        ingredients = self.db.table("Ingredients")
        params = [f"%{t}%" for t in terms]
        likes = [f"LOWER(i.ingredient) LIKE LOWER(${n})" for n in range(1, len(terms) + 1)]
        if match_all:
            # one existence check per term; a single row may satisfy several
            clauses = [f"EXISTS (SELECT 1 FROM {ingredients} i WHERE i.id = r.id AND {like})" for like in likes]
            return " AND ".join(clauses), params
        return f"EXISTS (SELECT 1 FROM {ingredients} i WHERE i.id = r.id AND ({' OR '.join(likes)}))", params

    def suggest_ingredients(self, q: str, limit: int = 10) -> List[str]:
        q = (q or "").strip()
        if len(q) < 2:
            return []
        rows = self.db.execute(
            f"SELECT DISTINCT ingredient FROM {self.db.table('Ingredients')} "
            f"WHERE LOWER(ingredient) LIKE LOWER($1) ORDER BY ingredient LIMIT $2",
            [f"%{q}%", limit],
        ).rows
        return [r["ingredient"] for r in rows]
