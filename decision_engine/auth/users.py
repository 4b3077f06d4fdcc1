from __future__ import annotations

from typing import Any

import bcrypt

_users: dict[str, dict[str, Any]] = {}


def _hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def register_user(username: str, password: str, user_id: str | None = None) -> None:
    """Add a login. ``user_id`` is the identity the decision engine sees."""
    _users[username] = {
        "password_hash": _hash_password(password),
        "user_id": user_id or username,
    }


def _seed_users() -> None:
    """Pre-seed demo diners on import."""
    register_user("alice", "alice123", "user-alice")
    register_user("bob", "bob123", "user-bob")
    register_user("carol", "carol123", "user-carol")


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{username, user_id}`` or ``None``."""
    record = _users.get(username)
    if record and _verify_password(password, record["password_hash"]):
        return {"username": username, "user_id": record["user_id"]}
    return None


_seed_users()
