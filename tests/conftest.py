from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import Engine, create_engine, select
from sqlalchemy.orm import Session

from skillgate.core.config import get_settings
from skillgate.storage.models import Base, CreditTxn, UsageEvent, User


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in ("DATABASE_URL", "ADMIN_API_KEY", "ALLOW_PROVIDERS", "LOCAL_API_KEY", "LOCAL_TIMEOUT_SECONDS", "SKILLGATE_REQUEST_ID_HEADER"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@dataclass
class LedgerDb:
    """A file-backed SQLite ledger: the app talks to it via aiosqlite, tests inspect it synchronously."""

    engine: Engine

    def seed(self, email: str, credits: str | None = None) -> str:
        with Session(self.engine) as session:
            user = User(email=email)
            session.add(user)
            session.flush()
            user_id = user.id
            if credits is not None:
                session.add(CreditTxn(user_id=user_id, amount_credits=Decimal(credits), reason="seed", meta={}))
            session.commit()
        return user_id

    def usage_events(self, user_id: str) -> list[UsageEvent]:
        with Session(self.engine) as session:
            return list(session.scalars(select(UsageEvent).where(UsageEvent.user_id == user_id)))

    def credit_txns(self, user_id: str) -> list[CreditTxn]:
        with Session(self.engine) as session:
            return list(session.scalars(select(CreditTxn).where(CreditTxn.user_id == user_id)))


@pytest.fixture
def ledger_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[LedgerDb]:
    path = tmp_path / "ledger.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{path}")
    get_settings.cache_clear()

    yield LedgerDb(engine=engine)
    engine.dispose()
