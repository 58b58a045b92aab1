"""KuzuDB embedded graph database connection."""
import os
import logging
import threading
from contextlib import contextmanager
import kuzu
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("DB_PATH", Path(__file__).resolve().parent.parent / "graph_data"))
_database = None

# Kuzu allows one write transaction per database at a time; request threads queue here.
_write_lock = threading.RLock()
_in_transaction = set()


def get_database():
    global _database
    if _database is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _database = kuzu.Database(str(DB_PATH))
        _init_schema(_database)
        logger.info("Opened family tree database at %s", DB_PATH)
    return _database


def _init_schema(db):
    conn = kuzu.Connection(db)

    # ── Accounts ──
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS User("
        "id SERIAL, email STRING, name STRING, password_hash STRING, "
        "role STRING, is_approved BOOL, created_at STRING, "
        "PRIMARY KEY(id))"
    )
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS Invitation("
        "id SERIAL, email STRING, invited_by_user_id INT64, "
        "status STRING, created_at STRING, "
        "PRIMARY KEY(id))"
    )

    # ── Family data ──
    # Optional text columns hold '' rather than NULL; readers map '' back to None.
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS Individual("
        "id SERIAL, user_id INT64, first_name STRING, last_name STRING, "
        "birth_date STRING, birth_place STRING, death_date STRING, death_place STRING, "
        "is_alive BOOL, bio STRING, photo_url STRING, "
        "created_at STRING, updated_at STRING, "
        "PRIMARY KEY(id))"
    )
    # Edge ids come from the "relationship" counter, so ORDER BY id is insertion order.
    conn.execute(
        "CREATE REL TABLE IF NOT EXISTS RELATED_TO("
        "FROM Individual TO Individual, id INT64, rel_type STRING, created_at STRING)"
    )
    conn.execute(
        "CREATE NODE TABLE IF NOT EXISTS Counter("
        "name STRING, value INT64, PRIMARY KEY(name))"
    )


@contextmanager
def write_transaction(conn: kuzu.Connection):
    """Run a block of statements as one serialized write transaction.

    Commits on success and rolls back on any exception. Nested use on the same
    connection joins the outer transaction.
    """
    with _write_lock:
        if id(conn) in _in_transaction:
            yield conn
            return
        conn.execute("BEGIN TRANSACTION")
        _in_transaction.add(id(conn))
        try:
            yield conn
        except BaseException:
            logger.debug("Rolling back write transaction")
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            _in_transaction.discard(id(conn))


def next_sequence_value(conn: kuzu.Connection, name: str, floor: int = 0) -> int:
    """Bump the named counter and return its new value; never goes backwards.

    ``floor`` is the highest value already in use, for stores written before the
    counter existed. Call inside ``write_transaction``.
    """
    result = conn.execute(
        "MATCH (c:Counter) WHERE c.name = $name RETURN c.value", {"name": name}
    )
    current = result.get_next()[0] if result.has_next() else None
    value = max(current or 0, floor) + 1
    if current is None:
        conn.execute("CREATE (c:Counter {name: $name, value: $value})",
                     {"name": name, "value": value})
    else:
        conn.execute("MATCH (c:Counter) WHERE c.name = $name SET c.value = $value",
                     {"name": name, "value": value})
    return value


def get_conn():
    db = get_database()
    conn = kuzu.Connection(db)
    try:
        yield conn
    finally:
        pass
