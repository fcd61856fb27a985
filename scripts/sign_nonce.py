# scripts/sign_nonce.py
import argparse  # parse CLI args
import hashlib  # derive the stake key hash
from nacl.signing import SigningKey  # Ed25519 signing

def main() -> None:  # main entrypoint
    parser = argparse.ArgumentParser(description="Sign a nonce from /api/v1/nonce with an Ed25519 stake key")  # CLI parser
    parser.add_argument("--nonce", required=True)  # hex payload as returned by the API
    parser.add_argument("--seed", help="hex 32-byte signing key seed; a fresh key is generated if omitted")  # optional key
    args = parser.parse_args()  # parse args

    sk = SigningKey(bytes.fromhex(args.seed)) if args.seed else SigningKey.generate()  # signing key
    vk = bytes(sk.verify_key)  # 32-byte public key sent as "key"

    signed = sk.sign(bytes.fromhex(args.nonce))  # sign the raw payload bytes, not the hex text

    print(f"seed:      {bytes(sk).hex()}")  # reuse with --seed
    print(f"key:       {vk.hex()}")  # public key for /api/v1/nonce/validate
    print(f"stake_key: {hashlib.blake2b(vk, digest_size=28).hexdigest()}")  # stake key hash to request the nonce with
    print(f"signature: {signed.signature.hex()}")  # signature for /api/v1/nonce/validate

if __name__ == "__main__":  # run as script
    main()  # call main
