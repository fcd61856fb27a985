import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./gatekeeper.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# HS256 secret shared with the gate devices' token minting
GATE_TOKEN_SECRET = os.environ.get("GATE_TOKEN_SECRET", "dev_secret_change_me")

# Upper bound for one signature verification call
VERIFY_TIMEOUT = float(os.environ.get("GATE_VERIFY_TIMEOUT", "5"))

# Used when an event row carries no window of its own
DEFAULT_NONCE_VALID_FOR = 900

RATE_LIMIT_CAPACITY = int(os.environ.get("GATE_RATE_LIMIT_CAPACITY", "10"))
RATE_LIMIT_WINDOW = float(os.environ.get("GATE_RATE_LIMIT_WINDOW", "60"))

IDEMPOTENCY_TTL = int(os.environ.get("IDEMPOTENCY_TTL", "300"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
