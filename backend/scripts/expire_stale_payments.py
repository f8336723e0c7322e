"""
Expire Stale Payments Script

Reconciliation sweep: marks pending payments whose checkout/invoice expiry
has passed as expired. Paid rows and subscriptions are never touched, and a
late "paid" webhook still activates an expired row.

Usage:
    cd backend
    python scripts/expire_stale_payments.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from walletwise.domain.clock import utcnow
from walletwise.infrastructure.db.database import close_db, get_session_context
from walletwise.infrastructure.db.repositories import PaymentRepository

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def expire_stale_payments() -> int:
    """Run one sweep. Returns the number of payments expired."""
    try:
        async with get_session_context() as session:
            expired = await PaymentRepository(session).expire_stale(utcnow())
    finally:
        await close_db()

    logger.info(f"Sweep complete: {expired} payment(s) expired")
    return expired


if __name__ == "__main__":
    asyncio.run(expire_stale_payments())
