#!/usr/bin/env python3
"""
Mint a development identity token signed with IDP_JWT_SECRET.

Usage:
    python scripts/generate_dev_token.py <external id> <email> [patient|doctor] [first] [last]
"""

import sys

from telehealth.api.auth import generate_token
from telehealth.models import SessionIdentity


def main(argv):
    if len(argv) < 2:
        print(__doc__.strip())
        return 1

    external_id, email = argv[0], argv[1]
    role = argv[2] if len(argv) > 2 else "patient"
    first_name = argv[3] if len(argv) > 3 else ""
    last_name = argv[4] if len(argv) > 4 else ""

    identity = SessionIdentity(
        external_id=external_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role_hint=role,
    )
    print(generate_token(identity))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
