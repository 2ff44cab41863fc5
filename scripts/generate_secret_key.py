#!/usr/bin/env python3
"""
Create or rotate IDP_JWT_SECRET in the project's .env file.

Usage:
    python scripts/generate_secret_key.py [path/to/.env] [--print]

With --print the secret is only shown, nothing is written.  Rotating the
secret invalidates every token minted with the previous one, including the
ones from generate_dev_token.py.
"""

import secrets
import sys
from pathlib import Path

from dotenv import dotenv_values, set_key

KEY_NAME = "IDP_JWT_SECRET"


def main(argv):
    print_only = "--print" in argv
    args = [a for a in argv if a != "--print"]
    env_path = Path(args[0]) if args else Path(".env")

    secret_key = secrets.token_hex(32)
    if print_only:
        print(f"{KEY_NAME}={secret_key}")
        return 0

    env_path.touch(exist_ok=True)
    previous = dotenv_values(env_path).get(KEY_NAME)
    set_key(str(env_path), KEY_NAME, secret_key)

    action = "Rotated" if previous else "Wrote"
    print(f"[secret] {action} {KEY_NAME} in {env_path.resolve()}")
    if previous:
        print("[secret] Tokens signed with the old secret are no longer accepted.")
        print("[secret] Re-run scripts/generate_dev_token.py for fresh development tokens.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
