"""Canonical signing payload for a ticket.

The client signs these exact bytes and the server rebuilds them from stored
state when the signature comes back, so the output must depend only on the
persisted event/ticket fields.
"""
import json
import uuid
from datetime import datetime, timedelta, timezone

from .config import DEFAULT_NONCE_VALID_FOR
from .models import Event, Ticket

PAYLOAD_TYPE = "GateKeeperTicket"
PAYLOAD_VERSION = "1.0.0"


def iso_utc(dt: datetime) -> str:
    # stores without tz support hand back naive values; those were written as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat(timespec="seconds")


def sign_by(event: Event, ticket: Ticket) -> datetime:
    window = event.nonce_valid_for if event.nonce_valid_for is not None else DEFAULT_NONCE_VALID_FOR
    created = ticket.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created + timedelta(seconds=window)


def build_signing_payload(event: Event, ticket: Ticket) -> bytes:
    data = {
        "assetId": ticket.asset_id,
        "createdAt": iso_utc(ticket.created_at),
        "eventId": event.uuid,
        "eventName": event.name,
        "policyId": ticket.policy_id,
        "signBy": iso_utc(sign_by(event, ticket)),
        "stakeKey": ticket.stake_key,
        "ticketId": str(uuid.UUID(bytes=ticket.signature_nonce)),
        "type": PAYLOAD_TYPE,
        "version": PAYLOAD_VERSION,
    }
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def payload_hex(event: Event, ticket: Ticket) -> str:
    return build_signing_payload(event, ticket).hex()
