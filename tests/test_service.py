import uuid

import pytest

from gatekeeper import service, store
from gatekeeper.db import SessionLocal
from gatekeeper.errors import AlreadyCheckedIn, InvalidArgument, InvalidSignature, MalformedCode, NotFound
from gatekeeper.models import Ticket
from tests.helpers import create_event

pytestmark = pytest.mark.asyncio

SIG = "ab" * 64
KEY = "cd" * 32


class AcceptAll:
    def __init__(self):
        self.calls = []

    def verify(self, signature, public_key, message, stake_key):
        self.calls.append((signature, public_key, message, stake_key))
        return True


class RejectAll:
    def verify(self, signature, public_key, message, stake_key):
        return False


def new_ticket(db, event, asset_id=None) -> Ticket:
    asset_id = asset_id or uuid.uuid4().hex
    service.request_nonce(db, event.uuid, "p1", asset_id, "s1")
    return store.find_ticket(db, event, "p1", asset_id, "s1")


async def test_request_nonce_creates_ticket_once(db):
    event = create_event()
    first = service.request_nonce(db, event.uuid, "p1", "a1", "s1")
    second = service.request_nonce(db, event.uuid, "p1", "a1", "s1")

    assert first == second
    ticket = store.find_ticket(db, event, "p1", "a1", "s1")
    assert ticket.state == "created"
    assert ticket.signature is None and ticket.ticket_nonce is None
    assert len(ticket.signature_nonce) == 16


async def test_request_nonce_unknown_event(db):
    with pytest.raises(NotFound) as exc:
        service.request_nonce(db, str(uuid.uuid4()), "p1", "a1", "s1")
    assert exc.value.reason_code == "EVENT_NOT_FOUND"


@pytest.mark.parametrize("event_uuid,policy_id,asset_id,stake_key", [
    ("not-a-uuid", "p1", "a1", "s1"),
    (None, "p1", "a1", "s1"),
    ("0b6f3c9e-2f6d-4d8e-9a51-3f1f0e4c1a01", "", "a1", "s1"),
    ("0b6f3c9e-2f6d-4d8e-9a51-3f1f0e4c1a01", "p1", "  ", "s1"),
])
async def test_request_nonce_invalid_arguments(db, event_uuid, policy_id, asset_id, stake_key):
    with pytest.raises(InvalidArgument):
        service.request_nonce(db, event_uuid, policy_id, asset_id, stake_key)


async def test_find_or_create_race_reuses_winner(db, monkeypatch):
    event = create_event()
    service.request_nonce(db, event.uuid, "p1", "race", "s1")
    winner = store.find_ticket(db, event, "p1", "race", "s1")

    real_find = store.find_ticket
    calls = []

    def find_after_race(*args):
        calls.append(args)
        # first lookup misses, as if the other request had not committed yet
        return None if len(calls) == 1 else real_find(*args)

    monkeypatch.setattr(store, "find_ticket", find_after_race)
    ticket = store.find_or_create_ticket(db, event, "p1", "race", "s1")

    assert ticket.id == winner.id
    assert ticket.signature_nonce == winner.signature_nonce


async def test_mint_once(db):
    event = create_event()
    ticket = new_ticket(db, event)
    verifier = AcceptAll()

    first = await service.confirm_and_mint(db, event, ticket, SIG, KEY, verifier)
    second = await service.confirm_and_mint(db, event, ticket, "ef" * 64, KEY, verifier)

    assert first == second
    assert first.security_code == str(uuid.UUID(bytes=ticket.ticket_nonce))
    # the first accepted signature is kept
    assert ticket.signature == bytes.fromhex(SIG)
    assert ticket.state == "nonce_minted"


async def test_mint_verifies_rebuilt_payload(db):
    event = create_event()
    ticket = new_ticket(db, event)
    verifier = AcceptAll()

    await service.confirm_and_mint(db, event, ticket, SIG, KEY, verifier)

    signature, public_key, message, stake_key = verifier.calls[0]
    assert signature == bytes.fromhex(SIG)
    assert public_key == bytes.fromhex(KEY)
    assert message.hex() == service.request_nonce(db, event.uuid, "p1", ticket.asset_id, "s1")
    assert stake_key == "s1"


async def test_mint_rejected_signature_leaves_ticket_untouched(db):
    event = create_event()
    ticket = new_ticket(db, event)

    with pytest.raises(InvalidSignature):
        await service.confirm_and_mint(db, event, ticket, SIG, KEY, RejectAll())

    db.refresh(ticket)
    assert ticket.signature is None and ticket.ticket_nonce is None


@pytest.mark.parametrize("signature,key", [("zz", KEY), (SIG, "not hex")])
async def test_mint_rejects_non_hex(db, signature, key):
    event = create_event()
    ticket = new_ticket(db, event)
    with pytest.raises(InvalidArgument):
        await service.confirm_and_mint(db, event, ticket, signature, key, AcceptAll())


async def test_conditional_mint_does_not_overwrite(db):
    event = create_event()
    ticket = new_ticket(db, event)

    assert store.mint_ticket_nonce(db, ticket, b"first") is True
    minted = ticket.ticket_nonce
    assert store.mint_ticket_nonce(db, ticket, b"second") is False
    assert ticket.ticket_nonce == minted
    assert ticket.signature == b"first"


async def test_conditional_check_in_across_sessions(db):
    event = create_event()
    ticket = new_ticket(db, event)
    store.mint_ticket_nonce(db, ticket, b"sig")

    first, second = SessionLocal(), SessionLocal()
    try:
        # both gates read the ticket before either writes
        a = first.get(Ticket, ticket.id)
        b = second.get(Ticket, ticket.id)
        assert not a.is_checked_in and not b.is_checked_in

        results = [store.mark_checked_in(first, a, "gate-a"), store.mark_checked_in(second, b, "gate-b")]

        assert results == [True, False]
        assert a.check_in_user == b.check_in_user == "gate-a"
        assert a.check_in_time == b.check_in_time
    finally:
        first.close()
        second.close()


async def test_validate_and_mint_requires_existing_ticket(db):
    event = create_event()
    with pytest.raises(NotFound) as exc:
        await service.validate_and_mint(db, event.uuid, "p1", "nope", "s1", SIG, KEY, AcceptAll())
    assert exc.value.reason_code == "TICKET_NOT_FOUND"


async def test_state_machine(db):
    event = create_event()
    ticket = new_ticket(db, event)
    assert ticket.state == "created"

    result = await service.confirm_and_mint(db, event, ticket, SIG, KEY, AcceptAll())
    assert ticket.state == "nonce_minted"

    checked = service.check_in(db, f"{result.asset_id}|{result.security_code}", "gate-7")
    assert checked.state == "checked_in"
    assert checked.check_in_user == "gate-7"
    assert checked.check_in_time is not None

    with pytest.raises(AlreadyCheckedIn) as exc:
        service.check_in(db, f"{result.asset_id}|{result.security_code}", "gate-8")
    assert exc.value.ticket.id == checked.id
    assert exc.value.detail.endswith("by gate-7")

    db.refresh(checked)
    assert checked.check_in_user == "gate-7"


async def test_check_in_unminted_code(db):
    event = create_event()
    ticket = new_ticket(db, event)
    with pytest.raises(NotFound):
        service.check_in(db, f"{ticket.asset_id}|{uuid.uuid4()}", "gate-1")
    # the challenge id is not a security code
    with pytest.raises(NotFound):
        service.check_in(db, f"{ticket.asset_id}|{uuid.UUID(bytes=ticket.signature_nonce)}", "gate-1")


async def test_check_in_wrong_asset(db):
    event = create_event()
    ticket = new_ticket(db, event)
    result = await service.confirm_and_mint(db, event, ticket, SIG, KEY, AcceptAll())
    with pytest.raises(NotFound):
        service.check_in(db, f"other|{result.security_code}", "gate-1")


async def test_check_in_malformed(db):
    with pytest.raises(MalformedCode):
        service.check_in(db, "garbage", "gate-1")
