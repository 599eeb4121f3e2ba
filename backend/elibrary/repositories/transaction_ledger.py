"""
Transaction ledger: one immutable billing row per (provider, provider id).

The ledger never updates an existing row. A duplicate delivery of the same
store transaction (client retry, webhook replay, concurrent request) is a
no-op that returns the row already on file.
"""

import logging
import uuid
from typing import Optional

from elibrary.core.exceptions import PersistenceFailureError
from elibrary.db.base import Transaction as DbTransaction
from elibrary.domain.entities import (
    LedgerEntry,
    LedgerResult,
    TransactionDetails,
    TransactionProvider,
)
from elibrary.domain.interfaces import ITransactionLedger
from elibrary.repositories.insert_utils import insert_ignoring_conflict
from sqlalchemy import func

logger = logging.getLogger(__name__)


def _provider_value(provider) -> str:
    return provider.value if isinstance(provider, TransactionProvider) else str(provider)


class TransactionLedger(ITransactionLedger):
    """SQLAlchemy implementation of the billing ledger.

    Writes join the caller's session transaction; committing or rolling back
    is the caller's decision.
    """

    def __init__(self, db_session) -> None:
        self.db = db_session

    def record_if_new(
        self,
        provider: TransactionProvider,
        original_transaction_id: str,
        details: TransactionDetails,
    ) -> LedgerResult:
        """
        Record a billing event unless it is already on file.

        Args:
            provider: Store that billed the user
            original_transaction_id: Store id, stable across re-deliveries
            details: Attributes used only when the row is new

        Returns:
            LedgerResult(created=True) with the new row, or created=False with
            the existing row untouched
        """
        if not original_transaction_id:
            raise ValueError("original_transaction_id is required")

        provider_value = _provider_value(provider)
        transaction_id = str(uuid.uuid4())
        values = {
            "id": transaction_id,
            "reference": f"iap_{uuid.uuid4().hex}",
            "user_id": details.user_id,
            "provider": provider_value,
            "provider_transaction_id": original_transaction_id,
            "amount": details.amount,
            "currency": details.currency,
            "status": details.status.value,
            "kind": details.kind.value,
            "direction": details.direction.value,
            "description": details.description,
            "purpose_type": details.purpose_type,
            "meta_data": dict(details.meta_data),
        }

        created = insert_ignoring_conflict(
            self.db,
            DbTransaction,
            values,
            conflict_columns=("provider", "provider_transaction_id"),
        )

        entry = self.get(provider, original_transaction_id)
        if entry is None:
            # Nothing inserted and nothing to re-read: not a uniqueness conflict
            raise PersistenceFailureError(
                f"Transaction {provider_value}:{original_transaction_id} could not be recorded"
            )

        if created:
            logger.info(
                "Transaction recorded",
                extra={
                    "context": {
                        "transaction_id": entry.id,
                        "provider": provider_value,
                        "provider_transaction_id": original_transaction_id,
                        "user_id": details.user_id,
                        "amount": str(details.amount),
                        "currency": details.currency,
                    }
                },
            )
        else:
            logger.info(
                "Transaction already recorded; skipping",
                extra={
                    "context": {
                        "transaction_id": entry.id,
                        "provider": provider_value,
                        "provider_transaction_id": original_transaction_id,
                        "recorded_for_user_id": entry.user_id,
                        "requested_by_user_id": details.user_id,
                    }
                },
            )

        return LedgerResult(created=created, transaction=entry)

    def get(
        self, provider: TransactionProvider, original_transaction_id: str
    ) -> Optional[LedgerEntry]:
        db_txn = (
            self.db.query(DbTransaction)
            .filter_by(
                provider=_provider_value(provider),
                provider_transaction_id=original_transaction_id,
            )
            .first()
        )
        return self._to_domain(db_txn) if db_txn else None

    def count_for(self, provider: TransactionProvider, original_transaction_id: str) -> int:
        return (
            self.db.query(func.count(DbTransaction.id))
            .filter_by(
                provider=_provider_value(provider),
                provider_transaction_id=original_transaction_id,
            )
            .scalar()
        )

    @staticmethod
    def _to_domain(db_txn: DbTransaction) -> LedgerEntry:
        return LedgerEntry(
            id=db_txn.id,
            reference=db_txn.reference,
            user_id=db_txn.user_id,
            provider=db_txn.provider,
            provider_transaction_id=db_txn.provider_transaction_id,
            amount=db_txn.amount,
            currency=db_txn.currency,
            status=db_txn.status,
            kind=db_txn.kind,
            direction=db_txn.direction,
            meta_data=dict(db_txn.meta_data or {}),
            created_at=db_txn.created_at,
        )
