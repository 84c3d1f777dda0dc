from collections.abc import Generator
from typing import Optional

from fastapi import Header
from sqlalchemy.orm import Session

from authz import Actor
from db import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: str = Header(...),
    x_actor_base: Optional[str] = Header(None),
    x_actor_active: str = Header("true"),
) -> Actor:
    """Operator context as resolved by the identity provider in front of this service."""
    return Actor(
        user_id=x_actor_id,
        role=x_actor_role.strip().lower(),
        assigned_base=x_actor_base or None,
        active=x_actor_active.strip().lower() not in ("false", "0", "no"),
    )
