import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from . import config
from .errors import AlreadyCheckedIn, InvalidArgument, InvalidSignature, NotFound
from .models import Event, Ticket
from .payload import build_signing_payload, iso_utc
from .qr import decode_qr
from .store import (
    find_event,
    find_or_create_ticket,
    find_ticket,
    find_ticket_by_qr,
    mark_checked_in,
    mint_ticket_nonce,
)
from .verifier import SignatureVerifier, verify_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintResult:
    asset_id: str
    security_code: str


def _require(**fields: str) -> None:
    for name, value in fields.items():
        if not value or not value.strip():
            raise InvalidArgument(f"{name} is required")


def _event_or_404(db: Session, event_uuid: str) -> Event:
    try:
        event_uuid = str(uuid.UUID(event_uuid))
    except (ValueError, TypeError):
        raise InvalidArgument("event_uuid is not a UUID")

    event = find_event(db, event_uuid)
    if not event:
        raise NotFound("event")
    return event


def _unhex(value: str, name: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise InvalidArgument(f"{name} is not hex")


def request_nonce(db: Session, event_uuid: str, policy_id: str, asset_id: str, stake_key: str) -> str:
    _require(policy_id=policy_id, asset_id=asset_id, stake_key=stake_key)
    event = _event_or_404(db, event_uuid)
    ticket = find_or_create_ticket(db, event, policy_id, asset_id, stake_key)
    return build_signing_payload(event, ticket).hex()


async def confirm_and_mint(
    db: Session,
    event: Event,
    ticket: Ticket,
    signature: str,
    public_key: str,
    verifier: SignatureVerifier,
) -> MintResult:
    sig = _unhex(signature, "signature")
    key = _unhex(public_key, "key")

    message = build_signing_payload(event, ticket)
    ok = await verify_signature(verifier, sig, key, message, ticket.stake_key, timeout=config.VERIFY_TIMEOUT)
    if not ok:
        logger.info("rejected signature ticket=%s asset_id=%s", ticket.id, ticket.asset_id)
        raise InvalidSignature("signature does not match ticket payload")

    if ticket.ticket_nonce is None:
        if mint_ticket_nonce(db, ticket, sig):
            logger.info("minted security code ticket=%s asset_id=%s", ticket.id, ticket.asset_id)

    return MintResult(asset_id=ticket.asset_id, security_code=str(uuid.UUID(bytes=ticket.ticket_nonce)))


async def validate_and_mint(
    db: Session,
    event_uuid: str,
    policy_id: str,
    asset_id: str,
    stake_key: str,
    signature: str,
    public_key: str,
    verifier: SignatureVerifier,
) -> MintResult:
    _require(policy_id=policy_id, asset_id=asset_id, stake_key=stake_key, signature=signature, key=public_key)
    event = _event_or_404(db, event_uuid)

    ticket = find_ticket(db, event, policy_id, asset_id, stake_key)
    if not ticket:
        raise NotFound("ticket")

    return await confirm_and_mint(db, event, ticket, signature, public_key, verifier)


def check_in(db: Session, scanned_code: str, gate_user: str) -> Ticket:
    asset_id, security_code = decode_qr(scanned_code)

    ticket = find_ticket_by_qr(db, asset_id, security_code)
    if not ticket:
        raise NotFound("ticket")

    if not mark_checked_in(db, ticket, gate_user):
        logger.warning("repeat check-in ticket=%s asset_id=%s gate_user=%s", ticket.id, asset_id, gate_user)
        raise AlreadyCheckedIn(ticket, f"checked in at {iso_utc(ticket.check_in_time)} by {ticket.check_in_user}")

    logger.info("checked in ticket=%s asset_id=%s gate_user=%s", ticket.id, asset_id, gate_user)
    return ticket
