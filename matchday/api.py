"""
REST API for the matchday rating and verification engine.
Thin wrappers around the services; identity comes from the bearer token.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from matchday.auth import hash_password, issue_player_token, read_player_token, verify_password
from matchday.config import config_from_env
from matchday.logging_config import setup_logging
from matchday.persistence import PlayerRepository, get_connection, init_db
from matchday.persistence.db import get_db_path, transaction
from matchday.services import (
    ConflictError,
    ForbiddenError,
    InvalidError,
    MatchdayError,
    MatchService,
    NotFoundError,
    PerformanceService,
    PositionScoreItem,
    SlotAllocator,
    TeamService,
    VerificationService,
)

logger = logging.getLogger(__name__)

CONFIG = config_from_env()

match_service = MatchService()
team_service = TeamService(CONFIG)
slot_allocator = SlotAllocator()
performance_service = PerformanceService(CONFIG)
verification_service = VerificationService(CONFIG)
rating_service = verification_service.ratings
reputation_gate = verification_service.reputation

_STATUS_FOR_ERROR: list[tuple[type[MatchdayError], int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ConflictError, 409),
    (InvalidError, 400),
]


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    init_db(db_path=get_db_path())
    logger.info("Database ready at %s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Matchday API",
    description="Competitive team ratings with two-sided match verification",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------


@app.exception_handler(MatchdayError)
async def matchday_error_handler(request: Request, exc: MatchdayError) -> JSONResponse:
    status = next((code for kind, code in _STATUS_FOR_ERROR if isinstance(exc, kind)), 400)
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------- Request models ----------

security = HTTPBearer(auto_error=False)


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    name: str | None = Field(None, max_length=200)


class LoginRequest(BaseModel):
    username: str
    password: str


class PositionsRequest(BaseModel):
    positions: list[str] = Field(..., description="Ranked position codes, at most 3")


class CreateTeamRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class AddMemberRequest(BaseModel):
    player_id: str
    role: str | None = Field(None, description="OWNER, ADMIN or MEMBER (default)")


class CreateMatchRequest(BaseModel):
    title: str | None = Field(None, max_length=200)
    format: str | None = Field(None, description="e.g. '7v7'; default 7v7")
    positions: list[str] | None = Field(None, description="Explicit per-side positions; overrides the format template")
    reserves_per_team: int = 2
    team_a_id: str | None = None
    team_b_id: str | None = None
    scheduled_at: datetime | None = None


class AssignTeamsRequest(BaseModel):
    team_a_id: str | None = None
    team_b_id: str | None = None


class JoinRequest(BaseModel):
    position: str | None = Field(None, description="Omit to use the player's preferred positions")
    team: str | None = Field(None, description="'A' or 'B'; omit to balance sides")


class PositionScoreIn(BaseModel):
    player_id: str
    score: float


class PositionScoresRequest(BaseModel):
    scores: list[PositionScoreIn]


class ReportRequest(BaseModel):
    team_id: str
    score_a: int
    score_b: int
    notes: str | None = None


class ResolveDisputeRequest(BaseModel):
    resolution: str = Field(..., description="AGREE_A, AGREE_B or INVALID")


def _get_current_player_id(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str | None:
    """Player id from the JWT, or None if no/invalid token."""
    if credentials is None:
        return None
    token = read_player_token(credentials.credentials)
    return token.player_id if token is not None else None


def _require_player(player_id: str | None = Depends(_get_current_player_id)) -> str:
    if not player_id:
        raise HTTPException(status_code=401, detail="Login required")
    return player_id


# ---------- Identity ----------


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    with db_conn() as conn:
        player_repo = PlayerRepository()
        with transaction(conn):
            if player_repo.get_by_username(conn, req.username):
                raise HTTPException(status_code=400, detail="Username already taken")
            player = player_repo.create(conn, req.username, hash_password(req.password), name=req.name)
        return {"player_id": player.id, "username": player.username, "token": issue_player_token(player.id)}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    with db_conn() as conn:
        player = PlayerRepository().get_by_username(conn, req.username)
        if player is None or not verify_password(req.password, player.password_hash):
            raise HTTPException(status_code=401, detail="Invalid username or password")
        return {"player_id": player.id, "username": player.username, "token": issue_player_token(player.id)}


@app.put("/players/me/positions")
def set_my_positions(req: PositionsRequest, player_id: str = Depends(_require_player)) -> dict[str, Any]:
    with db_conn() as conn:
        positions = performance_service.set_preferred_positions(conn, player_id, req.positions)
        return {"player_id": player_id, "positions": positions}


# ---------- Teams ----------


@app.post("/teams")
def create_team(req: CreateTeamRequest, player_id: str = Depends(_require_player)) -> dict[str, Any]:
    with db_conn() as conn:
        return team_service.create_team(conn, player_id, req.name).to_dict()


@app.post("/teams/{team_id}/members")
def add_team_member(
    team_id: str, req: AddMemberRequest, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    with db_conn() as conn:
        member = team_service.add_member(conn, team_id, player_id, req.player_id, req.role)
        return {
            "team_id": member.team_id,
            "player_id": member.player_id,
            "role": member.role.value,
            "status": member.status.value,
        }


@app.get("/teams/{team_id}/rating")
def get_team_rating_stats(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return rating_service.get_team_rating_stats(conn, team_id)


@app.get("/teams/{team_id}/rating/history")
def get_team_rating_history(team_id: str, limit: int = 10) -> dict[str, Any]:
    with db_conn() as conn:
        return rating_service.get_team_rating_history(conn, team_id, limit=limit)


@app.get("/teams/{team_id}/rank")
def get_team_rank(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return rating_service.get_team_rank(conn, team_id)


@app.get("/teams/{team_id}/reputation")
def get_team_reputation(
    team_id: str, player_id: str | None = Depends(_get_current_player_id)
) -> dict[str, Any]:
    """Score for team owners/admins; everyone else gets visible=false."""
    with db_conn() as conn:
        return reputation_gate.view(conn, team_id, player_id)


@app.get("/leaderboard")
def get_leaderboard(limit: int = 50, offset: int = 0) -> dict[str, Any]:
    with db_conn() as conn:
        return rating_service.get_leaderboard(conn, limit=limit, offset=offset)


# ---------- Matches ----------


@app.post("/matches")
def create_match(req: CreateMatchRequest, player_id: str = Depends(_require_player)) -> dict[str, Any]:
    with db_conn() as conn:
        match = match_service.create_match(
            conn,
            player_id,
            fmt=req.format,
            positions=req.positions,
            reserves_per_team=req.reserves_per_team,
            team_a_id=req.team_a_id,
            team_b_id=req.team_b_id,
            scheduled_at=req.scheduled_at,
            title=req.title,
        )
        return match.to_dict()


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return match_service.get_match(conn, match_id).to_dict()


@app.put("/matches/{match_id}/teams")
def assign_teams(
    match_id: str, req: AssignTeamsRequest, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    with db_conn() as conn:
        return match_service.assign_teams(conn, match_id, player_id, req.team_a_id, req.team_b_id).to_dict()


@app.post("/matches/{match_id}/join")
def join_match(
    match_id: str, req: JoinRequest | None = None, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    req = req or JoinRequest()
    with db_conn() as conn:
        result = slot_allocator.join(conn, match_id, player_id, req.position, req.team)
        return {"match_id": match_id, **result.to_dict()}


@app.post("/matches/{match_id}/leave")
def leave_match(match_id: str, player_id: str = Depends(_require_player)) -> dict[str, Any]:
    with db_conn() as conn:
        changed = slot_allocator.leave(conn, match_id, player_id)
        return {"match_id": match_id, "left": changed}


@app.post("/matches/{match_id}/position-scores")
def submit_position_scores(
    match_id: str, req: PositionScoresRequest, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    items = [PositionScoreItem(ratee_id=s.player_id, score=s.score) for s in req.scores]
    with db_conn() as conn:
        return performance_service.submit_position_scores(conn, match_id, player_id, items)


@app.post("/matches/{match_id}/reports")
def submit_match_report(
    match_id: str, req: ReportRequest, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    with db_conn() as conn:
        result = verification_service.submit_report(
            conn, match_id, req.team_id, player_id, req.score_a, req.score_b, notes=req.notes
        )
        return {"match_id": match_id, **result.to_dict()}


@app.get("/matches/{match_id}/reports")
def get_match_reports(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return verification_service.get_match_reports(conn, match_id)


@app.post("/matches/{match_id}/resolve-dispute")
def resolve_dispute(
    match_id: str, req: ResolveDisputeRequest, player_id: str = Depends(_require_player)
) -> dict[str, Any]:
    with db_conn() as conn:
        return verification_service.resolve_dispute(conn, match_id, player_id, req.resolution)


# ---------- Run with: uvicorn matchday.api:app --reload ----------
