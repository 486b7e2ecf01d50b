"""Dialect adapters.

Statements are written once, PostgreSQL style, with numbered placeholders
(``$1``, ``$2``...) and an optional ``RETURNING`` tail. Each adapter turns
that text into something its driver accepts and papers over the features
its backend lacks, so repositories never branch on the backend.
"""
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, IntegrityError

from .errors import (
    DUPLICATE_KEY,
    MISSING_COLUMN,
    MISSING_DEFAULT,
    MISSING_TABLE,
    CatalogError,
    QueryError,
    QueryTimeoutError,
    TransportError,
)
from .schema import SchemaInfo, detect_schema

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")
_RETURNING = re.compile(r"\s+RETURNING\s+[^;]*", re.IGNORECASE)
_ILIKE = re.compile(r"\bILIKE\b", re.IGNORECASE)
_JSON_CAST = re.compile(r"::\s*json\b", re.IGNORECASE)
_INSERT = re.compile(r"^\s*INSERT\b", re.IGNORECASE)
_TABLE_PATTERNS = (
    re.compile(r"INSERT\s+INTO\s+[`\"]?(\w+)[`\"]?", re.IGNORECASE),
    re.compile(r"UPDATE\s+[`\"]?(\w+)[`\"]?", re.IGNORECASE),
    re.compile(r"DELETE\s+FROM\s+[`\"]?(\w+)[`\"]?", re.IGNORECASE),
)


def extract_table_name(statement: str) -> Optional[str]:
    for pattern in _TABLE_PATTERNS:
        match = pattern.search(statement)
        if match:
            return match.group(1)
    return None


def insert_many(executor, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
    """Insert all rows with one multi-row VALUES statement."""
    if not rows:
        return 0
    width = len(columns)
    groups, params = [], []
    for n, row in enumerate(rows):
        groups.append("(" + ", ".join(f"${n * width + i + 1}" for i in range(width)) + ")")
        params.extend(row)
    result = executor.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(groups)}", params
    )
    return result.rowcount


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    generated_id: Optional[int] = None

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class Transaction:
    """Executor bound to one connection for the span of a transaction.

    With a deadline, every statement is limited to whatever is left of the
    transaction's budget, and nothing more is issued once it is spent.
    """

    def __init__(self, adapter: "DialectAdapter", conn: Connection, deadline: Optional[float] = None):
        self.adapter = adapter
        self.conn = conn
        self.deadline = deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def execute(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        remaining = self.remaining()
        if remaining is not None:
            if remaining <= 0:
                raise QueryTimeoutError("Transaction exceeded its time budget", statement=statement)
            self.adapter._arm_timeout(self.conn, remaining)
        return self.adapter._run(self.conn, statement, params)


class DialectAdapter:
    name = "generic"
    supports_returning = False
    supports_ilike = False
    supports_casts = False

    # (reason, patterns matched against the driver message), checked in order
    error_markers: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    def __init__(self, engine: Engine):
        self.engine = engine
        self.paramstyle = engine.dialect.paramstyle
        self._schema: Optional[SchemaInfo] = None

    # ---------- statement text ----------
    def prepare(self, statement: str, params: Sequence[Any] = ()) -> Tuple[str, Any]:
        params = list(params or ())
        text = statement
        if not self.supports_returning:
            text = _RETURNING.sub("", text)
        if not self.supports_ilike:
            text = _ILIKE.sub("LIKE", text)
        if not self.supports_casts:
            text = _JSON_CAST.sub("", text)
        if self.paramstyle in ("format", "pyformat"):
            text = text.replace("%", "%%")

        bound: List[Any] = []

        def bind(match: "re.Match[str]") -> str:
            index = int(match.group(1))
            if index < 1 or index > len(params):
                raise QueryError(f"Placeholder ${index} has no parameter", statement=statement)
            bound.append(self.coerce(params[index - 1]))
            return self._marker(len(bound))

        text = _PLACEHOLDER.sub(bind, text)
        if self.paramstyle == "named":
            return text, {f"p{i}": value for i, value in enumerate(bound, start=1)}
        return text, tuple(bound)

    def _marker(self, position: int) -> str:
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle in ("format", "pyformat"):
            return "%s"
        if self.paramstyle == "numeric":
            return f":{position}"
        return f":p{position}"

    def coerce(self, value: Any) -> Any:
        return value

    def quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote(name)

    def in_clause(self, column: str, values: Sequence[Any], start: int = 1) -> Tuple[str, List[Any]]:
        values = list(values)
        marks = ", ".join(f"${start + i}" for i in range(len(values)))
        return f"{column} IN ({marks})", values

    def on_conflict_update(self, conflict: Sequence[str], update: Sequence[str], touch: Optional[str] = "updated_at") -> str:
        sets = [f"{col} = excluded.{col}" for col in update]
        if touch:
            sets.append(f"{touch} = CURRENT_TIMESTAMP")
        return f"ON CONFLICT ({', '.join(conflict)}) DO UPDATE SET {', '.join(sets)}"

    # ---------- schema ----------
    @property
    def schema(self) -> SchemaInfo:
        if self._schema is None:
            self._schema = self.refresh_schema()
        return self._schema

    def refresh_schema(self) -> SchemaInfo:
        try:
            self._schema = detect_schema(self)
        except DBAPIError as exc:
            raise self._translate(exc, None) from exc
        logger.info("Detected %s schema: recipe tables %s, optional columns %s, native ids %s",
                    self.name, self._schema.recipe_tables, self._schema.optional_columns, self._schema.native_ids)
        return self._schema

    def table(self, logical: str) -> str:
        return self.quote(self.schema.table(logical))

    def recipe_tables(self) -> List[str]:
        return [self.quote(name) for name in self.schema.recipe_tables]

    def has_identity_default(self, column: Dict[str, Any], primary_key: Sequence[str]) -> bool:
        return column.get("autoincrement") is True or bool(column.get("identity"))

    # ---------- execution ----------
    def execute(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        with self.transaction() as tx:
            return tx.execute(statement, params)

    @contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[Transaction]:
        try:
            with self.engine.begin() as conn:
                if timeout is None:
                    yield Transaction(self, conn)
                    return
                with self._statement_timeout(conn, timeout):
                    yield Transaction(self, conn, deadline=time.monotonic() + timeout)
        except DBAPIError as exc:
            raise self._translate(exc, None) from exc

    @contextmanager
    def _statement_timeout(self, conn: Connection, seconds: float) -> Iterator[None]:
        yield

    def _arm_timeout(self, conn: Connection, seconds: float) -> None:
        """Limit the next statement to the given number of seconds."""

    def _run(self, conn: Connection, statement: str, params: Sequence[Any]) -> QueryResult:
        text, bound = self.prepare(statement, params)
        wants_rows = bool(_RETURNING.search(statement))
        try:
            cursor = conn.exec_driver_sql(text, bound)
        except DBAPIError as exc:
            error = self._translate(exc, statement)
            logger.error("%s query failed (%s): %s", self.name, type(error).__name__, " ".join(statement.split()))
            raise error from exc

        if cursor.returns_rows:
            rows = [dict(row) for row in cursor.mappings()]
            rowcount = len(rows)
        else:
            rows = []
            rowcount = cursor.rowcount

        generated_id = None
        if _INSERT.match(statement):
            if self.supports_returning:
                if rows and "id" in rows[0]:
                    generated_id = rows[0]["id"]
            else:
                generated_id = cursor.lastrowid or None
                table = extract_table_name(statement)
                if wants_rows and generated_id and table:
                    rows = self._run(conn, f"SELECT * FROM {self.quote(table)} WHERE id = $1", [generated_id]).rows
        return QueryResult(rows=rows, rowcount=rowcount, generated_id=generated_id)

    # ---------- errors ----------
    def _translate(self, exc: DBAPIError, statement: Optional[str]) -> CatalogError:
        message = str(exc.orig) if exc.orig is not None else str(exc)
        reason = self.classify(message)
        if reason == "timeout":
            return QueryTimeoutError(f"Statement exceeded its time budget: {message}", statement=statement)
        if reason == "transport" or exc.connection_invalidated or isinstance(exc, InterfaceError):
            return TransportError(f"{self.name} connection failed: {message}", statement=statement)
        if reason is None and isinstance(exc, IntegrityError):
            reason = DUPLICATE_KEY if "unique" in message.lower() else None
        return QueryError(message, statement=statement, reason=reason)

    def classify(self, message: str) -> Optional[str]:
        for reason, patterns in self.error_markers:
            if any(re.search(pattern, message, re.IGNORECASE) for pattern in patterns):
                return reason
        return None


class PostgresAdapter(DialectAdapter):
    name = "postgresql"
    supports_returning = True
    supports_ilike = True
    supports_casts = True
    error_markers = (
        ("timeout", (r"canceling statement due to statement timeout",)),
        ("transport", (r"could not connect", r"connection refused", r"server closed the connection",
                       r"terminating connection", r"connection already closed")),
        (MISSING_DEFAULT, (r'null value in column "id"',)),
        (DUPLICATE_KEY, (r"duplicate key value",)),
        (MISSING_COLUMN, (r"column .* does not exist",)),
        (MISSING_TABLE, (r"relation .* does not exist",)),
    )

    def in_clause(self, column, values, start=1):
        return f"{column} = ANY(${start})", [list(values)]

    def has_identity_default(self, column, primary_key):
        default = str(column.get("default") or "")
        return "nextval" in default or bool(column.get("identity")) or column.get("autoincrement") is True

    def _arm_timeout(self, conn, seconds):
        # 0 would switch the limit off
        conn.exec_driver_sql(f"SET LOCAL statement_timeout = {max(1, int(seconds * 1000))}")


class MySQLAdapter(DialectAdapter):
    name = "mysql"
    error_markers = (
        ("timeout", (r"maximum statement execution time exceeded", r"max_statement_time exceeded")),
        ("transport", (r"can't connect to mysql server", r"lost connection", r"server has gone away")),
        (MISSING_DEFAULT, (r"field 'id' doesn't have a default value",)),
        (DUPLICATE_KEY, (r"duplicate entry",)),
        (MISSING_COLUMN, (r"unknown column",)),
        (MISSING_TABLE, (r"table .* doesn't exist", r"unknown table")),
    )

    def on_conflict_update(self, conflict, update, touch="updated_at"):
        sets = [f"{col} = VALUES({col})" for col in update]
        if touch:
            sets.append(f"{touch} = CURRENT_TIMESTAMP")
        return f"ON DUPLICATE KEY UPDATE {', '.join(sets)}"

    def _timeout_setting(self, conn) -> str:
        return "max_statement_time" if getattr(conn.dialect, "is_mariadb", False) else "max_execution_time"

    def _arm_timeout(self, conn, seconds):
        if self._timeout_setting(conn) == "max_statement_time":
            value = f"{max(seconds, 0.001):.3f}"
        else:
            value = str(max(1, int(seconds * 1000)))
        conn.exec_driver_sql(f"SET SESSION {self._timeout_setting(conn)} = {value}")

    @contextmanager
    def _statement_timeout(self, conn, seconds):
        # session settings outlive the transaction on a pooled connection
        try:
            yield
        finally:
            conn.exec_driver_sql(f"SET SESSION {self._timeout_setting(conn)} = 0")


class SQLiteAdapter(DialectAdapter):
    """Local development and test backend.

    RETURNING is emulated even though recent SQLite builds understand it,
    which keeps behaviour identical across library versions.
    """

    name = "sqlite"
    error_markers = (
        ("timeout", (r"^interrupted$",)),
        ("transport", (r"unable to open database file",)),
        (MISSING_DEFAULT, (r"not null constraint failed: \w+\.id$",)),
        (DUPLICATE_KEY, (r"unique constraint failed",)),
        (MISSING_COLUMN, (r"no such column", r"has no column named")),
        (MISSING_TABLE, (r"no such table",)),
    )
    progress_interval = 1000

    def coerce(self, value):
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, datetime):
            return value.isoformat(" ")
        if isinstance(value, date):
            return value.isoformat()
        return value

    def has_identity_default(self, column, primary_key):
        # INTEGER PRIMARY KEY aliases the rowid
        return list(primary_key) == [column["name"]] and str(column["type"]).upper() == "INTEGER"

    @contextmanager
    def _statement_timeout(self, conn, seconds):
        raw = conn.connection.driver_connection
        deadline = time.monotonic() + seconds
        raw.set_progress_handler(lambda: time.monotonic() > deadline, self.progress_interval)
        try:
            yield
        finally:
            raw.set_progress_handler(None, 0)


ADAPTERS = {
    "postgresql": PostgresAdapter,
    "mysql": MySQLAdapter,
    "mariadb": MySQLAdapter,
    "sqlite": SQLiteAdapter,
}


def adapter_for(engine: Engine) -> DialectAdapter:
    try:
        adapter_cls = ADAPTERS[engine.dialect.name]
    except KeyError:
        raise ValueError(f"Unsupported database dialect: {engine.dialect.name}")
    return adapter_cls(engine)
