#!/usr/bin/env python
"""
Encrypt the API tokens of a TOGGL_TEAM roster with Fernet.
Run with: cd backend; python scripts/encrypt_team_tokens.py team.json
Prints the encrypted roster to paste into TOGGL_TEAM (with ENCRYPTED_TOKENS=true).
Requires DATABASE_URL and ENCRYPTION_KEY in .env; pass --generate-key to create a key.
"""

import os
import sys
import json

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from cryptography.fernet import Fernet


def encrypt_roster(raw_team: str, key: str) -> list:
    from app.utils.encrypt import encrypt_token

    roster = json.loads(raw_team)
    if not isinstance(roster, list):
        raise ValueError("Roster must be a JSON list of {\"name\", \"token\"} objects")

    encrypted = []
    for item in roster:
        name, token = item.get("name"), item.get("token")
        if not name or not token:
            print(f"Skipping incomplete roster item: {item!r}", file=sys.stderr)
            continue
        encrypted.append({"name": name, "token": encrypt_token(token, key)})
    return encrypted


def main(argv: list) -> int:
    if "--generate-key" in argv:
        print(Fernet.generate_key().decode("utf-8"))
        return 0

    encryption_key = os.getenv("ENCRYPTION_KEY")
    if not encryption_key:
        from app.config import settings
        encryption_key = settings.encryption_key
    if not encryption_key:
        print("ENCRYPTION_KEY not set. Generate one with --generate-key.", file=sys.stderr)
        return 1

    if len(argv) > 1:
        with open(argv[1], encoding="utf-8") as handle:
            raw_team = handle.read()
    else:
        raw_team = sys.stdin.read()

    try:
        encrypted = encrypt_roster(raw_team, encryption_key)
    except ValueError as e:
        print(f"Error encrypting roster: {e}", file=sys.stderr)
        return 1

    print(json.dumps(encrypted))
    print(f"\nEncrypted {len(encrypted)} member token(s). Set ENCRYPTED_TOKENS=true to use them.", file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
