#!/usr/bin/env python3
"""Recreate ./dev-local.db with a demo exchange desk and print a bearer token.

    python reset_dev_db.py
"""
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent
DB_FILE = ROOT / "dev-local.db"

load_dotenv(ROOT / ".env", override=True)
# This script never touches a configured server database.
os.environ["DATABASE_URL"] = f"sqlite:///{DB_FILE.as_posix()}"
os.environ.setdefault("SECRET_KEY", "dev-secret-key-not-for-production")

from cxdesk import models  # noqa: E402
from cxdesk.core.security import create_access_token  # noqa: E402
from cxdesk.database import Base, SessionLocal, engine  # noqa: E402

FIAT, CRYPTO = models.CurrencyType.FIAT, models.CurrencyType.CRYPTO

CURRENCIES = {
    "USD": ("US Dollar", FIAT, [100, 50, 20, 10, 5, 1]),
    "EUR": ("Euro", FIAT, [200, 100, 50, 20, 10, 5]),
    "BTC": ("Bitcoin", CRYPTO, [1, 0.1, 0.01, 0.001]),
}

# name -> tickers, in display order
REPOSITORIES = {
    "Front Till": ["USD", "EUR"],
    "Vault": ["USD", "EUR"],
    "Hot Wallet": ["BTC"],
}


def seed(db) -> tuple:
    org = models.Organization(name="Demo Exchange", slug="demo")
    user = models.User(email="teller@cxdesk.local", name="Teller", active=True)
    db.add_all([org, user])
    db.flush()

    for ticker, (name, type_of, values) in CURRENCIES.items():
        currency = models.Currency(organization_id=org.id, ticker=ticker, name=name, type_of=type_of)
        currency.denominations = [models.Denomination(value=v, name=str(v)) for v in values]
        db.add(currency)
        print(f"  {ticker}: {', '.join(str(v) for v in values)}")

    for position, (name, tickers) in enumerate(REPOSITORIES.items()):
        db.add(
            models.Repository(
                organization_id=org.id, name=name, currency_tickers=tickers, display_order=position
            )
        )
        print(f"  {name} holds {', '.join(tickers)}")

    db.commit()
    return org, user


def main():
    if DB_FILE.exists():
        DB_FILE.unlink()
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        org, user = seed(db)
        token = create_access_token(user.id, org.id)
        email = user.email

    print(f"\nReset {DB_FILE}")
    print(f"Bearer token for {email}:\n{token}")


if __name__ == "__main__":
    main()
