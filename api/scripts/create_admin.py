"""Create an administrator with an API key and print the key once."""

from __future__ import annotations

import argparse
import asyncio
import sys

from newsletter.auth.api_key import generate_api_key, get_key_prefix
from newsletter.auth.dependencies import ADMIN_ROLE
from newsletter.database import AsyncSessionLocal, engine
from newsletter.models.user import APIKey, User, UserRole


async def create_admin(username: str, email: str | None, key_label: str) -> str:
    async with AsyncSessionLocal() as session:
        user = User(username=username, email=email)
        session.add(user)
        await session.flush()

        session.add(UserRole(user_id=user.id, role=ADMIN_ROLE))

        plaintext_key, key_hash = generate_api_key()
        session.add(
            APIKey(
                user_id=user.id,
                key_hash=key_hash,
                key_prefix=get_key_prefix(plaintext_key),
                label=key_label,
            )
        )
        await session.commit()

    await engine.dispose()
    return plaintext_key


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("username", help="3-32 chars: lowercase letters, digits, underscore")
    parser.add_argument("--email", default=None)
    parser.add_argument("--key-label", default="admin")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    api_key = asyncio.run(create_admin(args.username, args.email, args.key_label))
    print(f"Created admin '{args.username}'. API key (shown once):")
    print(api_key)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
