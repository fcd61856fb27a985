import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import httpx
from jose import jwt
from nacl.signing import SigningKey

from gatekeeper import config
from gatekeeper.db import SessionLocal
from gatekeeper.models import Event


def create_event(name="GateKeeper Fest", nonce_valid_for=900) -> Event:
    db = SessionLocal()
    try:
        event = Event(uuid=str(uuid.uuid4()), name=name, nonce_valid_for=nonce_valid_for)
        db.add(event)
        db.commit()
        return event
    finally:
        db.close()


class Wallet:
    """An Ed25519 stake key pair the way a wallet would hold it."""

    def __init__(self):
        self.signing_key = SigningKey.generate()
        self.public_key = bytes(self.signing_key.verify_key)
        self.stake_key = hashlib.blake2b(self.public_key, digest_size=28).hexdigest()

    @property
    def key_hex(self) -> str:
        return self.public_key.hex()

    def sign(self, message: bytes) -> str:
        return self.signing_key.sign(message).signature.hex()

    def sign_nonce(self, nonce_hex: str) -> str:
        return self.sign(bytes.fromhex(nonce_hex))


def gate_token(gate_user="gate-1", ttl_minutes=60, secret=None) -> str:
    exp = int((datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)).timestamp())
    return jwt.encode({"sub": gate_user, "exp": exp}, secret or config.GATE_TOKEN_SECRET, algorithm="HS256")


def ticket_request(event: Event, wallet: Wallet, policy_id="p1", asset_id=None) -> dict:
    return {
        "event_uuid": event.uuid,
        "policy_id": policy_id,
        "asset_id": asset_id or uuid.uuid4().hex[:16],
        "stake_key": wallet.stake_key,
    }


async def request_nonce(client: httpx.AsyncClient, body: dict) -> str:
    r = await client.post("/api/v1/nonce", json=body)
    r.raise_for_status()
    return r.json()["nonce"]


async def validate(client: httpx.AsyncClient, body: dict, wallet: Wallet, nonce: str) -> httpx.Response:
    return await client.post(
        "/api/v1/nonce/validate",
        json={**body, "signature": wallet.sign_nonce(nonce), "key": wallet.key_hex},
    )


async def minted_ticket(client: httpx.AsyncClient, event: Event | None = None) -> dict:
    """Issue + validate a fresh ticket; returns the validate response body."""
    event = event or create_event()
    wallet = Wallet()
    body = ticket_request(event, wallet)
    nonce = await request_nonce(client, body)
    r = await validate(client, body, wallet, nonce)
    r.raise_for_status()
    return r.json()


async def check_in(client: httpx.AsyncClient, qr_code: str, gate_user="gate-1", headers=None) -> httpx.Response:
    h = {"Authorization": f"Bearer {gate_token(gate_user)}"}
    h.update(headers or {})
    return await client.post("/api/v1/checkin", json={"qr_code": qr_code}, headers=h)
