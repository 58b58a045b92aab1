"""Typed, directed relationship edges between individuals."""
import logging
from datetime import datetime, timezone

import kuzu

from . import auth
from .db import next_sequence_value, write_transaction
from .errors import ConflictError, ForbiddenError, NotFoundError
from .individuals import get_individual

logger = logging.getLogger(__name__)

PARENT = "parent"
CHILD = "child"
SPOUSE = "spouse"
SIBLING = "sibling"
RELATIONSHIP_TYPES = (PARENT, CHILD, SPOUSE, SIBLING)

_EDGE_MATCH = "MATCH (a:Individual)-[r:RELATED_TO]->(b:Individual) "


def _row_to_relationship(row) -> dict:
    return {"id": row[0], "individual_id": row[1], "related_individual_id": row[2],
            "relationship_type": row[3], "created_at": row[4]}


def _next_edge_id(conn: kuzu.Connection) -> int:
    # Ids are never reused, so a stale id cannot address a newer edge.
    result = conn.execute(_EDGE_MATCH + "RETURN max(r.id)")
    highest = result.get_next()[0] if result.has_next() else None
    return next_sequence_value(conn, "relationship", floor=highest or 0)


def get_relationship(conn: kuzu.Connection, relationship_id: int) -> dict | None:
    result = conn.execute(
        _EDGE_MATCH + "WHERE r.id = $id RETURN r.id, a.id, b.id, r.rel_type, r.created_at",
        {"id": relationship_id}
    )
    if result.has_next():
        return _row_to_relationship(result.get_next())
    return None


def relationship_exists(conn: kuzu.Connection, a_id: int, b_id: int) -> bool:
    """True if any edge joins the unordered pair {a_id, b_id}, whatever its type."""
    result = conn.execute(
        _EDGE_MATCH
        + "WHERE (a.id = $x AND b.id = $y) OR (a.id = $y AND b.id = $x) RETURN count(*)",
        {"x": a_id, "y": b_id}
    )
    return result.has_next() and result.get_next()[0] > 0


def can_link(user: dict, individual: dict, related: dict) -> bool:
    return (auth.is_admin(user)
            or individual["user_id"] == user["id"]
            or related["user_id"] == user["id"])


def create_relationship(conn: kuzu.Connection, user: dict, individual_id: int,
                        related_individual_id: int, relationship_type: str) -> dict:
    """Record a directed edge individual -> related.

    Raises NotFoundError if either endpoint is missing, ForbiddenError unless the
    user is an admin or owns one of the endpoints, and ConflictError if the pair is
    already linked in either direction. No inverse edge is created.
    """
    if relationship_type not in RELATIONSHIP_TYPES:
        raise ValueError(f"Unknown relationship type: {relationship_type}")
    if individual_id == related_individual_id:
        raise ValueError("An individual cannot be related to themselves")

    # Pair check and insert run as one transaction.
    with write_transaction(conn):
        individual = get_individual(conn, individual_id)
        related = get_individual(conn, related_individual_id)
        if individual is None or related is None:
            raise NotFoundError("Individuals not found")

        if not can_link(user, individual, related):
            raise ForbiddenError("Not authorized to create this relationship")

        if relationship_exists(conn, individual_id, related_individual_id):
            raise ConflictError("Relationship already exists")

        rid = _next_edge_id(conn)
        now = datetime.now(timezone.utc).isoformat()
        conn.execute(
            "MATCH (a:Individual), (b:Individual) WHERE a.id = $src AND b.id = $dst "
            "CREATE (a)-[:RELATED_TO {id: $id, rel_type: $type, created_at: $ts}]->(b)",
            {"src": individual_id, "dst": related_individual_id, "id": rid,
             "type": relationship_type, "ts": now}
        )
    logger.info("User %s linked %s -[%s]-> %s (relationship %s)",
                user["id"], individual_id, relationship_type, related_individual_id, rid)
    return {"id": rid, "individual_id": individual_id,
            "related_individual_id": related_individual_id,
            "relationship_type": relationship_type, "created_at": now}


def list_for_individual(conn: kuzu.Connection, individual_id: int) -> list[dict]:
    """Edges touching an individual in either direction, with both endpoint names."""
    result = conn.execute(
        _EDGE_MATCH
        + "WHERE a.id = $id OR b.id = $id "
        "RETURN r.id, a.id, b.id, r.rel_type, r.created_at, "
        "a.first_name, a.last_name, b.first_name, b.last_name ORDER BY r.id",
        {"id": individual_id}
    )
    rels = []
    while result.has_next():
        row = result.get_next()
        rel = _row_to_relationship(row)
        rel.update({
            "individual_first_name": row[5],
            "individual_last_name": row[6],
            "related_first_name": row[7],
            "related_last_name": row[8],
        })
        rels.append(rel)
    return rels


def list_edges(conn: kuzu.Connection) -> list[dict]:
    """Every edge as {id, source, target, type}, in insertion order."""
    result = conn.execute(_EDGE_MATCH + "RETURN r.id, a.id, b.id, r.rel_type ORDER BY r.id")
    edges = []
    while result.has_next():
        row = result.get_next()
        edges.append({"id": row[0], "source": row[1], "target": row[2], "type": row[3]})
    return edges


def delete_relationship(conn: kuzu.Connection, user: dict, relationship_id: int) -> None:
    with write_transaction(conn):
        rel = get_relationship(conn, relationship_id)
        if rel is None:
            raise NotFoundError("Relationship not found")
        individual = get_individual(conn, rel["individual_id"])
        related = get_individual(conn, rel["related_individual_id"])
        if not can_link(user, individual, related):
            raise ForbiddenError("Not authorized to delete this relationship")
        conn.execute(_EDGE_MATCH + "WHERE r.id = $id DELETE r", {"id": relationship_id})
    logger.info("User %s deleted relationship %s", user["id"], relationship_id)
