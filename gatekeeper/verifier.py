import asyncio
import hashlib
import logging
from typing import Protocol

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .errors import Internal, InvalidArgument

logger = logging.getLogger(__name__)

STAKE_KEY_HASH_SIZE = 28


class SignatureVerifier(Protocol):
    def verify(self, signature: bytes, public_key: bytes, message: bytes, stake_key: str) -> bool:
        """True when `signature` signs `message` under `public_key` and the key belongs to `stake_key`."""
        ...


def stake_key_hash(public_key: bytes) -> bytes:
    return hashlib.blake2b(public_key, digest_size=STAKE_KEY_HASH_SIZE).digest()


def parse_stake_key(stake_key: str) -> bytes:
    """Stake credential hash from a hex key hash or a hex reward address."""
    try:
        raw = bytes.fromhex(stake_key)
    except ValueError:
        raise InvalidArgument("stake key is not hex")

    if len(raw) == STAKE_KEY_HASH_SIZE:
        return raw
    # reward address: one header byte (0xe0 testnet / 0xe1 mainnet) + key hash
    if len(raw) == STAKE_KEY_HASH_SIZE + 1 and raw[0] >> 4 == 0xE:
        return raw[1:]
    raise InvalidArgument("stake key is neither a key hash nor a reward address")


class Ed25519StakeKeyVerifier:
    """Plain Ed25519 over the payload bytes, key bound to the stake key by its blake2b-224 hash."""

    def verify(self, signature: bytes, public_key: bytes, message: bytes, stake_key: str) -> bool:
        if len(public_key) != 32:
            raise InvalidArgument("public key must be 32 bytes")
        if len(signature) != 64:
            raise InvalidArgument("signature must be 64 bytes")
        expected = parse_stake_key(stake_key)

        if stake_key_hash(public_key) != expected:
            logger.info("public key does not belong to stake key %s", stake_key)
            return False

        try:
            VerifyKey(public_key).verify(message, signature)
        except BadSignatureError:
            return False
        return True


async def verify_signature(
    verifier: SignatureVerifier,
    signature: bytes,
    public_key: bytes,
    message: bytes,
    stake_key: str,
    timeout: float,
) -> bool:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(verifier.verify, signature, public_key, message, stake_key),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("signature verification timed out after %.1fs stake_key=%s", timeout, stake_key)
        return False
    except InvalidArgument:
        raise
    except Exception as e:
        logger.exception("signature verifier failed")
        raise Internal("signature verifier unavailable") from e


default_verifier = Ed25519StakeKeyVerifier()


def get_verifier() -> SignatureVerifier:
    return default_verifier
