import time

import pytest
from sqlalchemy import create_engine

from recipebook.database import make_engine
from recipebook.dialects import (
    MySQLAdapter,
    PostgresAdapter,
    SQLiteAdapter,
    adapter_for,
    extract_table_name,
    insert_many,
)
from recipebook.errors import (
    DUPLICATE_KEY,
    MISSING_COLUMN,
    MISSING_DEFAULT,
    MISSING_TABLE,
    QueryError,
    QueryTimeoutError,
    TransportError,
)


def test_placeholders_become_qmarks_in_order_of_appearance():
    adapter = adapter_for(create_engine("sqlite://"))
    text, params = adapter.prepare("SELECT * FROM t WHERE a = $2 AND b = $1 OR c = $2", ["x", "y"])
    assert text == "SELECT * FROM t WHERE a = ? AND b = ? OR c = ?"
    assert params == ("y", "x", "y")


def test_named_and_numeric_paramstyles():
    named = SQLiteAdapter(create_engine("sqlite://", paramstyle="named"))
    text, params = named.prepare("UPDATE t SET a = $1 WHERE id = $2", [1, 2])
    assert text == "UPDATE t SET a = :p1 WHERE id = :p2"
    assert params == {"p1": 1, "p2": 2}

    numeric = SQLiteAdapter(create_engine("sqlite://", paramstyle="numeric"))
    text, _ = numeric.prepare("UPDATE t SET a = $1 WHERE id = $2", [1, 2])
    assert text == "UPDATE t SET a = :1 WHERE id = :2"


def test_mysql_rewrites_returning_ilike_and_percent():
    adapter = MySQLAdapter(create_engine("mysql+pymysql://u:p@localhost/catalog"))
    text, params = adapter.prepare(
        "INSERT INTO t (a) SELECT a FROM s WHERE a ILIKE '50%' AND b = $1::json RETURNING *", ["{}"]
    )
    assert text == "INSERT INTO t (a) SELECT a FROM s WHERE a LIKE '50%%' AND b = %s"
    assert params == ("{}",)


def test_postgres_keeps_native_features():
    adapter = PostgresAdapter(create_engine("postgresql+psycopg2://u:p@localhost/catalog"))
    text, _ = adapter.prepare("INSERT INTO t (a) VALUES ($1) RETURNING id", ["x"])
    assert text == "INSERT INTO t (a) VALUES (%s) RETURNING id"
    assert adapter.in_clause("id", [3, 1], start=2) == ("id = ANY($2)", [[3, 1]])


def test_unbound_placeholder_is_rejected():
    adapter = adapter_for(create_engine("sqlite://"))
    with pytest.raises(QueryError):
        adapter.prepare("SELECT $3", [1])


def test_on_conflict_rendering_per_backend():
    sqlite = adapter_for(create_engine("sqlite://"))
    mysql = MySQLAdapter(create_engine("mysql+pymysql://u:p@localhost/catalog"))
    assert sqlite.on_conflict_update(("a", "b"), ("c",), touch=None) == \
        "ON CONFLICT (a, b) DO UPDATE SET c = excluded.c"
    assert mysql.on_conflict_update(("a", "b"), ("c",)) == \
        "ON DUPLICATE KEY UPDATE c = VALUES(c), updated_at = CURRENT_TIMESTAMP"


def test_extract_table_name():
    assert extract_table_name('INSERT INTO "Names" (name) VALUES ($1)') == "Names"
    assert extract_table_name("UPDATE `MenuItems` SET a = 1") == "MenuItems"
    assert extract_table_name("SELECT 1") is None


@pytest.mark.parametrize("message, reason", [
    ('null value in column "id" of relation "Name" violates not-null constraint', MISSING_DEFAULT),
    ('duplicate key value violates unique constraint "Names_pkey"', DUPLICATE_KEY),
    ('column "description" of relation "Names" does not exist', MISSING_COLUMN),
    ('relation "Names" does not exist', MISSING_TABLE),
    ("canceling statement due to statement timeout", "timeout"),
    ("could not connect to server: Connection refused", "transport"),
])
def test_postgres_error_classification(message, reason):
    adapter = PostgresAdapter(create_engine("postgresql+psycopg2://u:p@localhost/catalog"))
    assert adapter.classify(message) == reason


@pytest.mark.parametrize("message, reason", [
    ("(1364, \"Field 'id' doesn't have a default value\")", MISSING_DEFAULT),
    ("(1062, \"Duplicate entry '5' for key 'PRIMARY'\")", DUPLICATE_KEY),
    ("(1054, \"Unknown column 'meat' in 'field list'\")", MISSING_COLUMN),
    ("(1146, \"Table 'catalog.Name' doesn't exist\")", MISSING_TABLE),
    ("(3024, 'Query execution was interrupted, maximum statement execution time exceeded')", "timeout"),
    ("(2006, 'MySQL server has gone away')", "transport"),
])
def test_mysql_error_classification(message, reason):
    adapter = MySQLAdapter(create_engine("mysql+pymysql://u:p@localhost/catalog"))
    assert adapter.classify(message) == reason


def test_returning_is_emulated_on_sqlite(db):
    result = db.execute(
        f"INSERT INTO {db.table('WeeklyMenus')} (name, week_start_date, week_end_date) "
        f"VALUES ($1, $2, $3) RETURNING *",
        ["Week 1", "2024-01-07", "2024-01-13"],
    )
    assert result.generated_id
    assert result.first()["id"] == result.generated_id
    assert result.first()["name"] == "Week 1"


def test_insert_many_uses_one_statement(db):
    menu_id = db.execute(
        f"INSERT INTO {db.table('WeeklyMenus')} (week_start_date, week_end_date) VALUES ($1, $2) RETURNING id",
        ["2024-01-07", "2024-01-13"],
    ).generated_id
    list_id = db.execute(
        f"INSERT INTO {db.table('ShoppingLists')} (menu_id, name) VALUES ($1, $2) RETURNING id", [menu_id, "L"]
    ).generated_id
    with db.transaction() as tx:
        count = insert_many(tx, db.table("ShoppingListItems"), ("shopping_list_id", "ingredient", "random_id"),
                            [(list_id, "milk", "a" * 32), (list_id, "eggs", "b" * 32)])
        assert insert_many(tx, db.table("ShoppingListItems"), ("ingredient",), []) == 0
    assert count == 2
    rows = db.execute(f"SELECT ingredient FROM {db.table('ShoppingListItems')} ORDER BY ingredient").rows
    assert [r["ingredient"] for r in rows] == ["eggs", "milk"]


def test_missing_table_and_column_are_classified(db):
    with pytest.raises(QueryError) as exc:
        db.execute("SELECT * FROM NoSuchTable")
    assert exc.value.reason == MISSING_TABLE
    assert exc.value.statement == "SELECT * FROM NoSuchTable"

    with pytest.raises(QueryError) as exc:
        db.execute(f"SELECT no_such_column FROM {db.table('Names')}")
    assert exc.value.reason == MISSING_COLUMN


def test_statement_timeout_is_reported(db):
    runaway = "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT COUNT(*) AS n FROM c"
    with pytest.raises(QueryTimeoutError):
        with db.transaction(timeout=0.05) as tx:
            tx.execute(runaway)
    # the connection is usable again afterwards
    assert db.execute("SELECT 1 AS one").first()["one"] == 1


def test_failed_transaction_rolls_back(db):
    with pytest.raises(QueryError):
        with db.transaction() as tx:
            tx.execute(f"INSERT INTO {db.table('WeeklyMenus')} (week_start_date, week_end_date) VALUES ($1, $2)",
                       ["2024-01-07", "2024-01-13"])
            tx.execute("SELECT * FROM NoSuchTable")
    assert db.execute(f"SELECT COUNT(*) AS n FROM {db.table('WeeklyMenus')}").first()["n"] == 0


def test_unreachable_database_is_a_transport_error(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'catalog.db'}")
    with pytest.raises(TransportError) as exc:
        adapter_for(engine).execute("SELECT 1 AS one")
    assert exc.value.__cause__ is not None
    engine.dispose()


def test_spent_budget_stops_further_statements(db):
    with pytest.raises(QueryTimeoutError) as exc:
        with db.transaction(timeout=0.05) as tx:
            tx.execute("SELECT 1 AS one")
            time.sleep(0.1)
            tx.execute("SELECT 2 AS two")
    assert exc.value.statement == "SELECT 2 AS two"


class RecordingConnection:
    def __init__(self, mariadb=False):
        self.statements = []
        self.dialect = type("Dialect", (), {"is_mariadb": mariadb})()

    def exec_driver_sql(self, statement, *args):
        self.statements.append(statement)


def test_postgres_limits_each_statement_to_the_remaining_budget():
    adapter = PostgresAdapter(create_engine("postgresql+psycopg2://u:p@localhost/catalog"))
    conn = RecordingConnection()
    adapter._arm_timeout(conn, 14.5)
    adapter._arm_timeout(conn, 0.0001)
    assert conn.statements == ["SET LOCAL statement_timeout = 14500", "SET LOCAL statement_timeout = 1"]


def test_mysql_and_mariadb_limits():
    adapter = MySQLAdapter(create_engine("mysql+pymysql://u:p@localhost/catalog"))
    mysql, mariadb = RecordingConnection(), RecordingConnection(mariadb=True)
    adapter._arm_timeout(mysql, 2.5)
    adapter._arm_timeout(mariadb, 2.5)
    assert mysql.statements == ["SET SESSION max_execution_time = 2500"]
    assert mariadb.statements == ["SET SESSION max_statement_time = 2.500"]


def test_budget_is_rearmed_before_every_statement(engine):
    class Recording(SQLiteAdapter):
        armed = []

        def _arm_timeout(self, conn, seconds):
            self.armed.append(seconds)

    db = Recording(engine)
    with db.transaction(timeout=5) as tx:
        tx.execute("SELECT 1 AS one")
        time.sleep(0.01)
        tx.execute("SELECT 2 AS two")
    assert len(Recording.armed) == 2
    assert 5 >= Recording.armed[0] > Recording.armed[1] > 0
    with db.transaction() as tx:
        tx.execute("SELECT 3 AS three")
    assert len(Recording.armed) == 2
