"""Individual (person profile) storage."""
import logging
from datetime import datetime, timezone

import kuzu

from . import auth
from .db import write_transaction
from .errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("birth_date", "birth_place", "death_date", "death_place", "bio", "photo_url")

_COLUMNS = (
    "i.id, i.user_id, i.first_name, i.last_name, i.birth_date, i.birth_place, "
    "i.death_date, i.death_place, i.is_alive, i.bio, i.photo_url"
)


def _row_to_individual(row) -> dict:
    return {
        "id": row[0],
        "user_id": row[1],
        "first_name": row[2],
        "last_name": row[3],
        "birth_date": row[4] or None,
        "birth_place": row[5] or None,
        "death_date": row[6] or None,
        "death_place": row[7] or None,
        "is_alive": row[8],
        "bio": row[9] or None,
        "photo_url": row[10] or None,
    }


def _optional_params(fields: dict) -> dict:
    return {name: fields.get(name) or "" for name in OPTIONAL_FIELDS}


def create_individual(conn: kuzu.Connection, user_id: int, first_name: str, last_name: str,
                      is_alive: bool = True, **fields) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    params = {"uid": user_id, "fn": first_name, "ln": last_name,
              "alive": is_alive, "ts": now, **_optional_params(fields)}
    with write_transaction(conn):
        result = conn.execute(
            "CREATE (i:Individual {user_id: $uid, first_name: $fn, last_name: $ln, "
            "birth_date: $birth_date, birth_place: $birth_place, "
            "death_date: $death_date, death_place: $death_place, "
            "is_alive: $alive, bio: $bio, photo_url: $photo_url, "
            "created_at: $ts, updated_at: $ts}) RETURN i.id",
            params
        )
        iid = result.get_next()[0]
    logger.info("User %s created individual %s (%s %s)", user_id, iid, first_name, last_name)
    return get_individual(conn, iid)


def get_individual(conn: kuzu.Connection, individual_id: int) -> dict | None:
    result = conn.execute(
        f"MATCH (i:Individual) WHERE i.id = $id RETURN {_COLUMNS}",
        {"id": individual_id}
    )
    if result.has_next():
        return _row_to_individual(result.get_next())
    return None


def require_individual(conn: kuzu.Connection, individual_id: int) -> dict:
    ind = get_individual(conn, individual_id)
    if ind is None:
        raise NotFoundError("Individual not found")
    return ind


def list_individuals(conn: kuzu.Connection) -> list[dict]:
    """All individuals in a stable order: last name, then first name, then id."""
    result = conn.execute(
        f"MATCH (i:Individual) RETURN {_COLUMNS} "
        "ORDER BY i.last_name, i.first_name, i.id"
    )
    people = []
    while result.has_next():
        people.append(_row_to_individual(result.get_next()))
    return people


def can_edit(user: dict, individual: dict) -> bool:
    return auth.is_admin(user) or individual["user_id"] == user["id"]


def update_individual(conn: kuzu.Connection, user: dict, individual_id: int,
                      first_name: str, last_name: str, is_alive: bool, **fields) -> dict:
    """Replace a profile's fields. Only its owner or an admin may edit it."""
    now = datetime.now(timezone.utc).isoformat()
    with write_transaction(conn):
        existing = require_individual(conn, individual_id)
        if not can_edit(user, existing):
            raise ForbiddenError("Not authorized to edit this profile")
        conn.execute(
            "MATCH (i:Individual) WHERE i.id = $id "
            "SET i.first_name = $fn, i.last_name = $ln, "
            "i.birth_date = $birth_date, i.birth_place = $birth_place, "
            "i.death_date = $death_date, i.death_place = $death_place, "
            "i.is_alive = $alive, i.bio = $bio, i.photo_url = $photo_url, "
            "i.updated_at = $ts",
            {"id": individual_id, "fn": first_name, "ln": last_name,
             "alive": is_alive, "ts": now, **_optional_params(fields)}
        )
    logger.info("User %s updated individual %s", user["id"], individual_id)
    return get_individual(conn, individual_id)
