"""FastAPI application: accounts, invitations, individuals, relationships and the tree view."""
import json
import logging
import os

from fastapi import FastAPI, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from .db import get_conn
from .errors import FamilyTreeError, FetchError
from . import auth, individuals, invitations, plotting, relationships, schemas
from .tree_builder import ExpansionState, TreeView

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Family Tree API")


@app.exception_handler(FamilyTreeError)
async def family_tree_error(request: Request, exc: FamilyTreeError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/api/health")
def health():
    return {"ok": True}


# ── Auth ──

def _set_session(response: Response, user_id: int) -> str:
    token = auth.create_session_token(user_id)
    response.set_cookie(auth.SESSION_COOKIE, token, httponly=True, samesite="lax")
    return token


@app.get("/api/auth/setup-status")
def setup_status(conn=Depends(get_conn)):
    return {"needs_setup": auth.count_users(conn) == 0}


@app.post("/api/auth/register", status_code=201)
def register(body: schemas.RegisterRequest, response: Response, conn=Depends(get_conn)):
    # The first account is the administrator and must present the setup token.
    first = auth.count_users(conn) == 0
    if first and (not auth.SETUP_TOKEN or body.setup_token != auth.SETUP_TOKEN):
        raise HTTPException(403, "Invalid setup token")
    try:
        user = auth.create_user(
            conn, body.email, body.name, body.password,
            role=auth.ROLE_ADMIN if first else auth.ROLE_USER,
            is_approved=first,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    if first:
        _set_session(response, user["id"])
        return {"message": "Administrator account created", "user": user}
    return {"message": "User registered successfully. Awaiting admin approval.", "user": user}


@app.post("/api/auth/login")
def login(body: schemas.LoginRequest, response: Response, conn=Depends(get_conn)):
    user = auth.authenticate_user(conn, body.email, body.password)
    if not user:
        logger.info("Failed login for %s", body.email)
        raise HTTPException(400, "Invalid credentials")
    if not user["is_approved"]:
        raise HTTPException(403, "Account not approved yet")
    token = _set_session(response, user["id"])
    return {"token": token, "user": user}


@app.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(auth.SESSION_COOKIE)
    return {"ok": True}


@app.get("/api/auth/me", response_model=schemas.UserOut)
def me(user=Depends(auth.get_current_user)):
    return user


# ── Invitations (admin) ──

@app.post("/api/invitations", status_code=201)
def invite(body: schemas.InvitationCreate, admin=Depends(auth.require_admin),
           conn=Depends(get_conn)):
    try:
        return invitations.create_invitation(conn, body.email, admin["id"])
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.get("/api/invitations/pending")
def pending_invitations(admin=Depends(auth.require_admin), conn=Depends(get_conn)):
    return invitations.list_pending(conn)


@app.put("/api/invitations/approve/{email}")
def approve_invitation(email: str, admin=Depends(auth.require_admin), conn=Depends(get_conn)):
    return invitations.approve(conn, email)


@app.put("/api/invitations/reject/{email}")
def reject_invitation(email: str, admin=Depends(auth.require_admin), conn=Depends(get_conn)):
    return invitations.reject(conn, email)


# ── Individuals ──

@app.post("/api/individuals", response_model=schemas.IndividualOut, status_code=201)
def create_individual(body: schemas.IndividualIn, user=Depends(auth.get_current_user),
                      conn=Depends(get_conn)):
    return individuals.create_individual(conn, user["id"], **body.model_dump())


@app.get("/api/individuals/{individual_id}", response_model=schemas.IndividualOut)
def get_individual(individual_id: int, user=Depends(auth.get_current_user),
                   conn=Depends(get_conn)):
    return individuals.require_individual(conn, individual_id)


@app.put("/api/individuals/{individual_id}", response_model=schemas.IndividualOut)
def update_individual(individual_id: int, body: schemas.IndividualIn,
                      user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return individuals.update_individual(conn, user, individual_id, **body.model_dump())


# ── Relationships ──

@app.get("/api/relationships/individual/{individual_id}")
def individual_relationships(individual_id: int, user=Depends(auth.get_current_user),
                             conn=Depends(get_conn)):
    return relationships.list_for_individual(conn, individual_id)


@app.post("/api/relationships", response_model=schemas.RelOut, status_code=201)
def create_relationship(body: schemas.RelCreate, user=Depends(auth.get_current_user),
                        conn=Depends(get_conn)):
    try:
        return relationships.create_relationship(
            conn, user, body.individual_id, body.related_individual_id, body.relationship_type
        )
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.delete("/api/relationships/{relationship_id}")
def delete_relationship(relationship_id: int, user=Depends(auth.get_current_user),
                        conn=Depends(get_conn)):
    relationships.delete_relationship(conn, user, relationship_id)
    return {"message": "Relationship deleted successfully"}


# ── Tree ──

def load_tree_data(conn) -> tuple[list[dict], list[dict]]:
    """Snapshot of all individuals and edges; construction never starts on a failed fetch."""
    try:
        return individuals.list_individuals(conn), relationships.list_edges(conn)
    except RuntimeError as e:
        logger.error("Could not load tree data: %s", e)
        raise FetchError("Could not load tree data") from e


def _tree_view(conn, collapsed: list[int], selected: int | None) -> TreeView:
    people, edges = load_tree_data(conn)
    view = TreeView(logger=logger,
                    expansion=ExpansionState({pid: False for pid in collapsed}))
    view.refresh(people, edges)
    if selected is not None:
        view.set_selected(next((p for p in people if p["id"] == selected), None))
    return view


@app.get("/api/tree/individuals", response_model=list[schemas.IndividualOut])
def tree_individuals(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return load_tree_data(conn)[0]


@app.get("/api/tree/relationships", response_model=list[schemas.TreeEdgeOut])
def tree_relationships(user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return load_tree_data(conn)[1]


@app.get("/api/tree")
def tree(collapsed: list[int] = Query(default=[]), selected: int | None = None,
         user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    return _tree_view(conn, collapsed, selected).to_dict()


@app.get("/api/tree/figure")
def tree_figure(collapsed: list[int] = Query(default=[]), selected: int | None = None,
                user=Depends(auth.get_current_user), conn=Depends(get_conn)):
    fig = plotting.build_tree_figure(_tree_view(conn, collapsed, selected))
    return JSONResponse(content=json.loads(fig.to_json()))
