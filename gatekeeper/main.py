import logging
import uuid

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, service
from .admin import router as admin_router
from .db import Base, SessionLocal, engine, get_db
from .errors import AlreadyCheckedIn, GateError
from .idempotency import get_cached_response, request_fingerprint, set_cached_response
from .models import AuditLog
from .payload import iso_utc
from .qr import encode_qr
from .rate_limit import token_bucket
from .security import bearer_token, verify_gate_token
from .verifier import SignatureVerifier, get_verifier

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="GateKeeper", version="1.0.0")

redis = Redis.from_url(config.REDIS_URL, decode_responses=False)

app.include_router(admin_router)

Base.metadata.create_all(bind=engine)


# --- Error mapping ---
@app.exception_handler(GateError)
async def gate_error_handler(request: Request, exc: GateError):
    return JSONResponse(
        status_code=exc.http_status,
        content={"status": "REJECTED", "reason_code": exc.reason_code, "detail": exc.detail},
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("ticket store unavailable")
    return JSONResponse(
        status_code=503,
        content={"status": "REJECTED", "reason_code": "INTERNAL", "detail": "ticket store unavailable"},
    )


@app.exception_handler(RedisError)
async def cache_error_handler(request: Request, exc: RedisError):
    logger.exception("cache unavailable")
    return JSONResponse(
        status_code=503,
        content={"status": "REJECTED", "reason_code": "INTERNAL", "detail": "cache unavailable"},
    )


@app.get("/health")
async def health():
    return {"status": "ok", "service": "gatekeeper"}


# --- Nonce issue / validate ---
class NonceReq(BaseModel):
    event_uuid: str
    policy_id: str
    asset_id: str
    stake_key: str


class ValidateNonceReq(NonceReq):
    signature: str
    key: str


@app.post("/api/v1/nonce")
async def generate_nonce(req: NonceReq, db: Session = Depends(get_db)):
    nonce = service.request_nonce(db, req.event_uuid, req.policy_id, req.asset_id, req.stake_key)
    return {"nonce": nonce}


@app.post("/api/v1/nonce/validate")
async def validate_nonce(
    req: ValidateNonceReq,
    db: Session = Depends(get_db),
    verifier: SignatureVerifier = Depends(get_verifier),
):
    result = await service.validate_and_mint(
        db,
        req.event_uuid,
        req.policy_id,
        req.asset_id,
        req.stake_key,
        req.signature,
        req.key,
        verifier,
    )
    qr = encode_qr(result.asset_id, result.security_code)
    return {"assetId": result.asset_id, "securityCode": result.security_code, "qr": qr.image}


# --- Gate check-in ---
class CheckInReq(BaseModel):
    qr_code: str


@app.post("/api/v1/checkin")
async def check_in_ticket(
    req: CheckInReq,
    request: Request,
    db: Session = Depends(get_db),
    authorization: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    decision_id = str(uuid.uuid4())
    ip = request.client.host if request.client else "unknown"
    ua = request.headers.get("user-agent", "")
    asset_id = req.qr_code.partition("|")[0] or None

    allowed = await token_bucket(
        redis,
        key=ip,
        capacity=config.RATE_LIMIT_CAPACITY,
        refill_per_sec=config.RATE_LIMIT_CAPACITY / config.RATE_LIMIT_WINDOW,
    )
    if not allowed:
        body = {"status": "REJECTED", "reason_code": "RATE_LIMITED", "asset_id": asset_id, "decision_id": decision_id}
        _audit(decision_id, ip, ua, None, None, asset_id, body["status"], body["reason_code"])
        return JSONResponse(status_code=429, content=body)

    try:
        gate_user = verify_gate_token(bearer_token(authorization), config.GATE_TOKEN_SECRET)["sub"]
    except ValueError as e:
        body = {"status": "REJECTED", "reason_code": str(e), "asset_id": asset_id, "decision_id": decision_id}
        _audit(decision_id, ip, ua, None, None, asset_id, body["status"], body["reason_code"])
        return JSONResponse(status_code=401, content=body)

    # replays are scoped to the authenticated gate user and bound to the scanned code
    fingerprint = request_fingerprint(req.qr_code)
    if idempotency_key:
        cached = await get_cached_response(redis, gate_user, idempotency_key)
        if cached:
            if cached["fingerprint"] != fingerprint:
                body = {
                    "status": "REJECTED",
                    "reason_code": "IDEMPOTENCY_KEY_REUSED",
                    "asset_id": asset_id,
                    "decision_id": decision_id,
                }
                _audit(decision_id, ip, ua, gate_user, None, asset_id, body["status"], body["reason_code"])
                return JSONResponse(status_code=422, content=body)
            return JSONResponse(status_code=cached["status_code"], content=cached["body"])

    event_id = None
    try:
        ticket = service.check_in(db, req.qr_code, gate_user)
    except GateError as e:
        status_code = e.http_status
        body = {
            "status": "REJECTED",
            "reason_code": e.reason_code,
            "detail": e.detail,
            "asset_id": asset_id,
            "decision_id": decision_id,
        }
        if isinstance(e, AlreadyCheckedIn):
            event_id = e.ticket.event.uuid
    else:
        status_code = 200
        body = {
            "status": "ACCEPTED",
            "reason_code": "OK",
            "success": True,
            "check_in_time": iso_utc(ticket.check_in_time),
            "asset_id": ticket.asset_id,
            "decision_id": decision_id,
        }
        event_id = ticket.event.uuid

    if idempotency_key:
        await set_cached_response(
            redis,
            gate_user,
            idempotency_key,
            fingerprint,
            status_code,
            body,
            ttl_seconds=config.IDEMPOTENCY_TTL,
        )
    _audit(decision_id, ip, ua, gate_user, event_id, asset_id, body["status"], body["reason_code"])
    return JSONResponse(status_code=status_code, content=body)


def _audit(
    decision_id: str,
    ip: str,
    ua: str,
    gate_user: str | None,
    event_id: str | None,
    asset_id: str | None,
    status: str,
    reason: str,
):
    db = SessionLocal()
    try:
        db.add(AuditLog(
            decision_id=decision_id,
            ip=ip,
            user_agent=ua,
            gate_user=gate_user,
            event_id=event_id,
            asset_id=asset_id,
            status=status,
            reason_code=reason,
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("audit write failed decision_id=%s", decision_id)
    finally:
        db.close()
