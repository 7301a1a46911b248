#!/usr/bin/env python3
"""
Script to grant (or claw back) coins for a Farcaster user
Usage: python grant_coins.py <fid> <amount> [reason]
Example: python grant_coins.py 194 25 support_refund
"""

import sys
from typing import Optional
from sqlalchemy.orm import sessionmaker
from common.error_handling import BusinessLogicError
from coin_service.db import SessionLocal, engine
from coin_service.models import Base
from coin_service.stats import apply_delta

def grant_coins(fid: int, amount: int, reason: str = "manual_adjustment",
                session_factory: sessionmaker = SessionLocal) -> Optional[int]:
    """Apply a coin delta and return the new balance, or None if it was refused"""
    try:
        with session_factory.begin() as db:
            stats = apply_delta(db, fid, coins=amount, reason=reason)
            balance = stats.coins
    except BusinessLogicError as e:
        print(f"❌ {e.message}")
        return None

    print(f"✅ Adjusted fid {fid} by {amount:+d} coins ({reason})")
    print(f"   New balance: {balance}")
    return balance

def main():
    if len(sys.argv) < 3:
        print("Usage: python grant_coins.py <fid> <amount> [reason]")
        print("Example: python grant_coins.py 194 25 support_refund")
        sys.exit(1)

    try:
        fid = int(sys.argv[1])
        amount = int(sys.argv[2])
    except ValueError:
        print("❌ fid and amount must be integers")
        sys.exit(1)
    reason = sys.argv[3] if len(sys.argv) > 3 else "manual_adjustment"

    Base.metadata.create_all(bind=engine)
    if grant_coins(fid, amount, reason) is None:
        sys.exit(1)

if __name__ == "__main__":
    main()
