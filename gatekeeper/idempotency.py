import hashlib
import json


def _cache_key(scope: str, idem_key: str) -> str:
    return f"idem:{scope}:{idem_key}"


def request_fingerprint(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


async def get_cached_response(redis, scope: str, idem_key: str) -> dict | None:
    """Cached {"fingerprint", "status_code", "body"} for a key within one caller's scope."""
    raw = await redis.get(_cache_key(scope, idem_key))
    return json.loads(raw) if raw else None


async def set_cached_response(
    redis,
    scope: str,
    idem_key: str,
    fingerprint: str,
    status_code: int,
    body: dict,
    ttl_seconds: int = 300,
):
    cached = {"fingerprint": fingerprint, "status_code": status_code, "body": body}
    await redis.setex(_cache_key(scope, idem_key), ttl_seconds, json.dumps(cached))
