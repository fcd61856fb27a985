# scripts/mint_token.py
import os  # read environment variables
import argparse  # parse CLI args
from datetime import datetime, timedelta, timezone  # create an expiry timestamp
from jose import jwt  # create a JWT token

def main() -> None:  # main entrypoint
    parser = argparse.ArgumentParser(description="Mint a bearer token for a gate scanning device")  # CLI parser
    parser.add_argument("--gate-user", required=True)  # recorded as checkInUser
    parser.add_argument("--ttl-hours", type=int, default=12)  # one event day
    args = parser.parse_args()  # parse args

    secret = os.environ.get("GATE_TOKEN_SECRET", "dev_secret_change_me")  # signing secret shared with the gate API

    exp_dt = datetime.now(timezone.utc) + timedelta(hours=args.ttl_hours)  # expiry datetime
    exp_ts = int(exp_dt.timestamp())  # expiry as unix seconds

    payload = {  # JWT claims/payload
        "sub": args.gate_user,  # gate user id, required by verifier
        "exp": exp_ts,  # required by verifier (expiry)
    }

    token = jwt.encode(payload, secret, algorithm="HS256")  # sign token
    print(token)  # output token to stdout

if __name__ == "__main__":  # run as script
    main()  # call main
