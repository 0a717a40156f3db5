from __future__ import annotations

import argparse
import os
from decimal import Decimal

from skillgate.storage.db import create_engine, create_sessionmaker
from skillgate.storage.repos import ensure_user, top_up


async def main() -> None:
    parser = argparse.ArgumentParser(description="Create a user (if missing) and grant starter credits")
    parser.add_argument("--email", required=True, help="User email, stored as given")
    parser.add_argument("--credits", default="50", help="Credits to grant")
    parser.add_argument("--reason", default="bootstrap", help="Ledger reason")
    args = parser.parse_args()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is not set")

    amount = Decimal(args.credits)
    if amount <= 0:
        raise SystemExit("--credits must be positive")

    engine = create_engine(database_url=database_url)
    sessionmaker = create_sessionmaker(engine)

    async with sessionmaker() as session:
        user_id = await ensure_user(session, email=args.email)
        balance = await top_up(session, user_id=user_id, amount=amount, reason=args.reason)

    await engine.dispose()

    print(f"{args.email} {user_id} balance={balance.normalize()}")


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
