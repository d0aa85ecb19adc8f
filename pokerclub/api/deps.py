"""API dependencies for identity, authorization and common utilities.

Authentication happens upstream; the gateway forwards the verified identity
as trusted headers.
"""

import uuid
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from pokerclub.logging_config import bind_tournament_context
from pokerclub.models.tournament import Tournament
from pokerclub.tournament.event_bus import TournamentEventBus
from pokerclub.utils.db import get_db
from pokerclub.utils.errors import PermissionDenied, TournamentNotFound

ROLES = ("player", "manager", "admin")


@dataclass(frozen=True)
class Actor:
    """Caller identity forwarded by the gateway."""

    id: str
    role: str = "player"
    club_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def manages(self, club_id: str) -> bool:
        if self.is_admin:
            return True
        return self.role == "manager" and club_id in self.club_ids


def get_trace_id(x_trace_id: Annotated[str | None, Header()] = None) -> str:
    """Get or generate trace ID for request tracking."""
    return x_trace_id or str(uuid.uuid4())


async def get_current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
    x_actor_club_ids: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the actor from gateway headers.

    Raises:
        HTTPException: If the identity headers are missing or malformed
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "AUTH_REQUIRED",
                    "message": "Authentication required",
                    "details": {},
                }
            },
        )

    role = (x_actor_role or "player").lower()
    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "AUTH_INVALID_ROLE",
                    "message": f"Unknown role: {role}",
                    "details": {"role": role},
                }
            },
        )

    club_ids = frozenset(
        c.strip() for c in (x_actor_club_ids or "").split(",") if c.strip()
    )
    return Actor(id=x_actor_id, role=role, club_ids=club_ids)


def get_event_bus(request: Request) -> TournamentEventBus | None:
    return getattr(request.app.state, "event_bus", None)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
EventBus = Annotated[TournamentEventBus | None, Depends(get_event_bus)]
TraceId = Annotated[str, Depends(get_trace_id)]


def require_club_manager(actor: Actor, club_id: str) -> None:
    """Admins, and managers of the club, may manage its tournaments."""
    if not actor.manages(club_id):
        raise PermissionDenied()


async def require_tournament_manager(
    tournament_id: str,
    actor: CurrentActor,
    db: DbSession,
) -> Actor:
    """Resolve the tournament's club and require the actor to manage it."""
    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        raise TournamentNotFound(tournament_id)
    require_club_manager(actor, tournament.club_id)
    bind_tournament_context(tournament_id, actor_id=actor.id)
    return actor


TournamentManager = Annotated[Actor, Depends(require_tournament_manager)]


async def require_self_or_manager(
    tournament_id: str,
    user_id: str,
    actor: Actor,
    db: AsyncSession,
) -> None:
    """Players act on their own registration; anyone else must manage the club."""
    if user_id == actor.id:
        return
    await require_tournament_manager(tournament_id, actor, db)
