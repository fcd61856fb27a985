from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError


def verify_gate_token(token: str, secret: str) -> dict:
    """Claims of a gate operator token; raises ValueError with a reason code."""
    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"], options={"require_exp": True})
    except ExpiredSignatureError:
        raise ValueError("EXPIRED")
    except JWTError:
        raise ValueError("INVALID_TOKEN")

    if not payload.get("sub"):
        raise ValueError("INVALID_TOKEN")

    return payload


def bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise ValueError("INVALID_TOKEN")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ValueError("INVALID_TOKEN")
    return token.strip()
