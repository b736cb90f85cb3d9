"""
Player identity: password hashes on the players table and bearer JWTs naming one player.
A token carries the player id in `sub` and a `kind` claim; anything else is rejected.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

# pbkdf2_sha256 has no password length limit and needs no native backend
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "matchday-dev-secret-change-in-production")
ALGORITHM = "HS256"
TOKEN_KIND = "player"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days


@dataclass(frozen=True)
class PlayerToken:
    player_id: str
    expires_at: datetime


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str | None) -> bool:
    """False for players without a password and for hashes this context cannot read."""
    if not hashed or pwd_context.identify(hashed) is None:
        return False
    return pwd_context.verify(plain, hashed)


def issue_player_token(player_id: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    if not player_id:
        raise ValueError("player_id is required")
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    claims = {"sub": player_id, "kind": TOKEN_KIND, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def read_player_token(token: str) -> PlayerToken | None:
    """None when the token is malformed, expired, badly signed or does not name a player."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    player_id = payload.get("sub")
    if payload.get("kind") != TOKEN_KIND or not isinstance(player_id, str) or not player_id.strip():
        return None
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return PlayerToken(player_id=player_id, expires_at=datetime.fromtimestamp(exp, tz=timezone.utc))
