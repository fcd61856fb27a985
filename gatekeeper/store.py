"""Ticket store.

Tickets are only ever mutated through the conditional updates below; each one
is a single UPDATE guarded on the previous state so concurrent requests for
the same ticket cannot both apply.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Event, Ticket

logger = logging.getLogger(__name__)


def find_event(db: Session, event_uuid: str) -> Event | None:
    return db.execute(select(Event).where(Event.uuid == event_uuid)).scalar_one_or_none()


def find_ticket(db: Session, event: Event, policy_id: str, asset_id: str, stake_key: str) -> Ticket | None:
    return db.execute(
        select(Ticket).where(
            Ticket.event_id == event.id,
            Ticket.policy_id == policy_id,
            Ticket.asset_id == asset_id,
            Ticket.stake_key == stake_key,
        )
    ).scalar_one_or_none()


def find_or_create_ticket(db: Session, event: Event, policy_id: str, asset_id: str, stake_key: str) -> Ticket:
    ticket = find_ticket(db, event, policy_id, asset_id, stake_key)
    if ticket:
        return ticket

    ticket = Ticket(
        event_id=event.id,
        policy_id=policy_id,
        asset_id=asset_id,
        stake_key=stake_key,
        created_at=datetime.now(timezone.utc).replace(microsecond=0),
        signature_nonce=uuid.uuid4().bytes,
    )
    db.add(ticket)
    try:
        db.commit()
    except IntegrityError:
        # lost the race on the natural key; use the row that won
        db.rollback()
        ticket = find_ticket(db, event, policy_id, asset_id, stake_key)
        if ticket is None:
            raise
        return ticket

    logger.info("created ticket id=%s event=%s asset_id=%s", ticket.id, event.uuid, asset_id)
    return ticket


def mint_ticket_nonce(db: Session, ticket: Ticket, signature: bytes) -> bool:
    """Set signature + ticket nonce if none is set yet. Returns whether this call minted."""
    result = db.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id, Ticket.ticket_nonce.is_(None))
        .values(signature=signature, ticket_nonce=uuid.uuid4().bytes)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(ticket)
    return result.rowcount == 1


def find_ticket_by_qr(db: Session, asset_id: str, security_code: str) -> Ticket | None:
    return db.execute(
        select(Ticket).where(
            Ticket.asset_id == asset_id,
            Ticket.ticket_nonce == uuid.UUID(security_code).bytes,
        )
    ).scalar_one_or_none()


def mark_checked_in(db: Session, ticket: Ticket, gate_user: str) -> bool:
    """Flip the ticket to checked in unless it already is. Returns whether this call did it."""
    result = db.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id, Ticket.is_checked_in.is_(False))
        .values(
            is_checked_in=True,
            check_in_time=datetime.now(timezone.utc).replace(microsecond=0),
            check_in_user=gate_user,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(ticket)
    return result.rowcount == 1
