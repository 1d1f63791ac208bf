# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.ledger_service import LedgerService
from ...services.meeting_service import MeetingService
from ...services.payment_ingestion_service import PaymentIngestionService
from ...services.wallet_admin_service import WalletAdminService
from .database import get_db


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


def get_meeting_service(db: Session = Depends(get_db)) -> MeetingService:
    """Get MeetingService with the outbox-backed side-effect queue."""
    return MeetingService(db)


def get_payment_ingestion_service(db: Session = Depends(get_db)) -> PaymentIngestionService:
    return PaymentIngestionService(db)


def get_wallet_admin_service(db: Session = Depends(get_db)) -> WalletAdminService:
    return WalletAdminService(db)
