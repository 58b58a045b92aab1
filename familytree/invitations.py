"""Invitation whitelist: admins invite an email, the person registers, an admin approves."""
import logging
from datetime import datetime, timezone

import kuzu

from . import auth
from .db import write_transaction
from .errors import NotFoundError

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"


def _row_to_invitation(row) -> dict:
    return {"id": row[0], "email": row[1], "invited_by_user_id": row[2],
            "status": row[3], "created_at": row[4]}


def get_invitation(conn: kuzu.Connection, email: str, status: str | None = None) -> dict | None:
    query = ("MATCH (i:Invitation) WHERE i.email = $email "
             + ("AND i.status = $status " if status else "")
             + "RETURN i.id, i.email, i.invited_by_user_id, i.status, i.created_at")
    params = {"email": email.strip().lower()}
    if status:
        params["status"] = status
    result = conn.execute(query, params)
    if result.has_next():
        return _row_to_invitation(result.get_next())
    return None


def create_invitation(conn: kuzu.Connection, email: str, invited_by_user_id: int) -> dict:
    email = email.strip().lower()
    now = datetime.now(timezone.utc).isoformat()
    with write_transaction(conn):
        if auth.get_user_by_email(conn, email):
            raise ValueError("User with this email already exists")
        if get_invitation(conn, email):
            raise ValueError("User already invited")
        result = conn.execute(
            "CREATE (i:Invitation {email: $email, invited_by_user_id: $by, "
            "status: $status, created_at: $ts}) RETURN i.id",
            {"email": email, "by": invited_by_user_id, "status": PENDING, "ts": now}
        )
        iid = result.get_next()[0]
    logger.info("User %s invited %s", invited_by_user_id, email)
    return {"id": iid, "email": email, "invited_by_user_id": invited_by_user_id,
            "status": PENDING, "created_at": now}


def list_pending(conn: kuzu.Connection) -> list[dict]:
    """Pending invitations, newest first, with the inviting admin's name."""
    result = conn.execute(
        "MATCH (i:Invitation), (u:User) "
        "WHERE i.status = $status AND i.invited_by_user_id = u.id "
        "RETURN i.id, i.email, i.invited_by_user_id, i.status, i.created_at, u.name "
        "ORDER BY i.created_at DESC",
        {"status": PENDING}
    )
    invitations = []
    while result.has_next():
        row = result.get_next()
        inv = _row_to_invitation(row)
        inv["invited_by_name"] = row[5]
        invitations.append(inv)
    return invitations


def _set_status(conn: kuzu.Connection, invitation: dict, status: str) -> dict:
    conn.execute(
        "MATCH (i:Invitation) WHERE i.id = $id SET i.status = $status",
        {"id": invitation["id"], "status": status}
    )
    return {**invitation, "status": status}


def approve(conn: kuzu.Connection, email: str) -> dict:
    """Accept the pending invitation for email and approve the matching account."""
    with write_transaction(conn):
        invitation = get_invitation(conn, email, status=PENDING)
        if not invitation:
            raise NotFoundError("Invitation not found or already processed")
        if not auth.get_user_by_email(conn, email):
            raise NotFoundError("User not found")
        invitation = _set_status(conn, invitation, ACCEPTED)
        user = auth.set_user_approved(conn, email, True)
    logger.info("Approved account %s", invitation["email"])
    return {"message": "User approved successfully", "user": user, "invitation": invitation}


def reject(conn: kuzu.Connection, email: str) -> dict:
    with write_transaction(conn):
        invitation = get_invitation(conn, email, status=PENDING)
        if not invitation:
            raise NotFoundError("Invitation not found or already processed")
        invitation = _set_status(conn, invitation, REJECTED)
    logger.info("Rejected invitation for %s", invitation["email"])
    return {"message": "Invitation rejected successfully", "invitation": invitation}
