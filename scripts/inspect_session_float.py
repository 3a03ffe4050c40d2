from __future__ import annotations

import argparse

from cxdesk import models
from cxdesk.database import SessionLocal
from cxdesk.services.float_reconciliation import (
    build_currency_panel_state,
    currency_decimal_count,
    format_money,
    sort_stacks_by_value,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Print the float panels of a session.")
    parser.add_argument("session_id", type=int)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        session = db.get(models.CxSession, args.session_id)
        if session is None:
            raise SystemExit(f"Session not found: {args.session_id}")

        print(f"Session {session.id} ({session.status.value})")
        currencies = {
            c.ticker: c
            for c in db.query(models.Currency).filter(
                models.Currency.organization_id == session.organization_id
            )
        }
        repositories = (
            db.query(models.Repository)
            .filter(models.Repository.organization_id == session.organization_id)
            .order_by(models.Repository.display_order.asc(), models.Repository.id.asc())
        )
        for repository in repositories:
            print(f"\n{repository.name}")
            for ticker in repository.currency_tickers or []:
                stacks = sort_stacks_by_value(
                    db.query(models.FloatStack)
                    .filter(models.FloatStack.session_id == session.id)
                    .filter(models.FloatStack.repository_id == repository.id)
                    .filter(models.FloatStack.ticker == ticker)
                    .all()
                )
                if not stacks:
                    print(f"  {ticker}: no float stacks")
                    continue
                currency = currencies.get(ticker)
                decimals = currency_decimal_count(currency.type_of if currency else None)
                panel = build_currency_panel_state(stacks)
                print(
                    f"  {ticker}: previous={format_money(panel.previous, decimals)}"
                    f" open={format_money(panel.open, decimals)}"
                    f" close={format_money(panel.close, decimals)}"
                    f" current={format_money(panel.current, decimals)}"
                )
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
