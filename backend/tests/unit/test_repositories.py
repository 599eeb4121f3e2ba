"""
Repository tests: ledger, entitlements, catalog, analytics and users.

All run against the in-memory SQLite database, so the conflict-ignoring
inserts exercise real unique constraints.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
from elibrary.core.exceptions import PersistenceFailureError
from elibrary.db.base import PurchasedBook, Transaction
from elibrary.db.base import User as DbUser
from elibrary.domain.entities import TransactionDetails, TransactionProvider
from elibrary.repositories.analytics_repo import BookAnalyticsRepository
from elibrary.repositories.catalog_repo import CatalogRepository
from elibrary.repositories.entitlement_repo import EntitlementRepository
from elibrary.repositories.insert_utils import insert_ignoring_conflict
from elibrary.repositories.transaction_ledger import TransactionLedger
from elibrary.repositories.user_repo import UserRepository


def _details(user_id, amount="4.99", **kwargs):
    return TransactionDetails(user_id=user_id, amount=Decimal(amount), **kwargs)


@pytest.mark.unit
@pytest.mark.repositories
class TestTransactionLedger:
    def test_record_new_transaction(self, db_session, user):
        ledger = TransactionLedger(db_session)

        result = ledger.record_if_new(
            TransactionProvider.APPLE,
            "1000000001",
            _details(user.id, meta_data={"product_id": "book.123"}),
        )
        db_session.commit()

        assert result.created is True
        assert result.transaction.provider == "apple"
        assert result.transaction.provider_transaction_id == "1000000001"
        assert result.transaction.reference.startswith("iap_")
        assert len(result.transaction.id) == 36
        assert result.transaction.meta_data == {"product_id": "book.123"}

    def test_duplicate_returns_existing_row_unchanged(self, db_session, user, other_user):
        ledger = TransactionLedger(db_session)
        first = ledger.record_if_new(TransactionProvider.APPLE, "1000000001", _details(user.id))

        second = ledger.record_if_new(
            TransactionProvider.APPLE, "1000000001", _details(other_user.id, amount="9.99")
        )

        assert second.created is False
        assert second.transaction.id == first.transaction.id
        assert second.transaction.user_id == user.id
        assert second.transaction.amount == Decimal("4.99")
        assert ledger.count_for(TransactionProvider.APPLE, "1000000001") == 1

    def test_same_id_from_other_provider_is_distinct(self, db_session, user):
        ledger = TransactionLedger(db_session)
        ledger.record_if_new(TransactionProvider.APPLE, "shared-id", _details(user.id))

        result = ledger.record_if_new(TransactionProvider.GOOGLE, "shared-id", _details(user.id))

        assert result.created is True
        assert db_session.query(Transaction).count() == 2

    def test_get_unknown_returns_none(self, db_session):
        assert TransactionLedger(db_session).get(TransactionProvider.APPLE, "missing") is None

    def test_empty_transaction_id_rejected(self, db_session, user):
        with pytest.raises(ValueError):
            TransactionLedger(db_session).record_if_new(
                TransactionProvider.APPLE, "", _details(user.id)
            )

    def test_nothing_inserted_and_nothing_found_is_a_failure(self, db_session, user, monkeypatch):
        monkeypatch.setattr(
            "elibrary.repositories.transaction_ledger.insert_ignoring_conflict",
            Mock(return_value=False),
        )

        with pytest.raises(PersistenceFailureError):
            TransactionLedger(db_session).record_if_new(
                TransactionProvider.APPLE, "1000000001", _details(user.id)
            )

    def test_negative_amount_rejected(self, user):
        with pytest.raises(ValueError):
            _details(user.id, amount="-1")


@pytest.mark.unit
@pytest.mark.repositories
class TestEntitlementRepository:
    def test_grant_then_duplicate(self, db_session, user, books):
        repo = EntitlementRepository(db_session)
        book_id = books["book.123"].id

        assert repo.grant_if_absent(user.id, book_id).granted is True
        assert repo.grant_if_absent(user.id, book_id).granted is False
        assert db_session.query(PurchasedBook).count() == 1
        assert repo.owns(user.id, book_id) is True

    def test_grant_is_per_user(self, db_session, user, other_user, books):
        repo = EntitlementRepository(db_session)
        book_id = books["book.123"].id
        repo.grant_if_absent(user.id, book_id)

        assert repo.grant_if_absent(other_user.id, book_id).granted is True
        assert repo.owns(other_user.id, books["book.456"].id) is False

    def test_grant_many_returns_only_new_grants(self, db_session, user, books):
        repo = EntitlementRepository(db_session)
        first, second = books["book.123"].id, books["book.456"].id
        repo.grant_if_absent(user.id, first)

        granted = repo.grant_many(user.id, [first, second, second])

        assert granted == [second]
        assert repo.owned_item_ids(user.id, [first, second]) == {first, second}

    def test_grant_many_links_transactions(self, db_session, user, books):
        ledger = TransactionLedger(db_session)
        entry = ledger.record_if_new(TransactionProvider.APPLE, "tx-1", _details(user.id))
        book_id = books["book.123"].id

        EntitlementRepository(db_session).grant_many(
            user.id, [book_id], {book_id: entry.transaction.id}
        )

        row = db_session.query(PurchasedBook).filter_by(book_id=book_id).one()
        assert row.transaction_id == entry.transaction.id

    def test_owned_item_ids_empty_input(self, db_session, user):
        assert EntitlementRepository(db_session).owned_item_ids(user.id, []) == set()

    def test_list_for_user(self, db_session, user, other_user, books):
        repo = EntitlementRepository(db_session)
        repo.grant_if_absent(user.id, books["book.123"].id)
        repo.grant_if_absent(user.id, books["book.456"].id)
        repo.grant_if_absent(other_user.id, books["book.123"].id)
        db_session.commit()

        library = repo.list_for_user(user.id)

        assert sorted(item.product_id for item in library) == ["book.123", "book.456"]
        assert repo.list_for_user(12345) == []

    def test_user_purchased_books_relationship_loads(self, db_session, user, books):
        EntitlementRepository(db_session).grant_if_absent(user.id, books["book.123"].id)
        db_session.commit()
        db_session.expire_all()

        db_user = db_session.get(DbUser, user.id)

        assert [row.book.product_id for row in db_user.purchased_books] == ["book.123"]


@pytest.mark.unit
@pytest.mark.repositories
class TestCatalogRepository:
    def test_batch_lookup_skips_unknown(self, db_session, books):
        found = CatalogRepository(db_session).get_by_product_ids(
            ["book.123", "book.999", "", "book.456"]
        )

        assert set(found) == {"book.123", "book.456"}
        assert found["book.123"].title == "The Pragmatic Reader"

    def test_batch_lookup_empty(self, db_session):
        assert CatalogRepository(db_session).get_by_product_ids([]) == {}

    def test_single_lookups(self, db_session, books):
        repo = CatalogRepository(db_session)

        assert repo.get_by_product_id("book.456").id == books["book.456"].id
        assert repo.get_by_id(books["book.123"].id).product_id == "book.123"
        assert repo.get_by_product_id("book.999") is None
        assert repo.get_by_id(9999) is None


@pytest.mark.unit
@pytest.mark.repositories
class TestBookAnalyticsRepository:
    def test_increment_creates_then_counts(self, db_session, books):
        repo = BookAnalyticsRepository(db_session)
        book_id = books["book.123"].id

        repo.increment_purchases([book_id])
        repo.increment_purchases([book_id, book_id])

        assert repo.get_purchases(book_id) == 2

    def test_increment_nothing(self, db_session, books):
        repo = BookAnalyticsRepository(db_session)
        repo.increment_purchases([])

        assert repo.get_purchases(books["book.123"].id) is None


@pytest.mark.unit
@pytest.mark.repositories
class TestInsertIgnoringConflict:
    def test_savepoint_path_for_other_dialects(self, db_session, user, books, monkeypatch):
        # Force the generic SAVEPOINT + IntegrityError branch on SQLite
        monkeypatch.setattr(
            "elibrary.repositories.insert_utils._dialect_insert", lambda name: None
        )
        values = {"user_id": user.id, "book_id": books["book.123"].id}

        assert insert_ignoring_conflict(
            db_session, PurchasedBook, values, ("user_id", "book_id")
        ) is True
        assert insert_ignoring_conflict(
            db_session, PurchasedBook, values, ("user_id", "book_id")
        ) is False
        assert db_session.query(PurchasedBook).count() == 1


@pytest.mark.unit
@pytest.mark.repositories
class TestUserRepository:
    def test_create_and_lookup_by_email(self, db_session):
        repo = UserRepository(db_session)
        created = repo.create(email="  Mixed@Example.COM ", name="Mixed", password="pw-123456")

        assert created.email == "mixed@example.com"
        assert repo.get_by_email("MIXED@example.com").id == created.id
        assert repo.get_by_id(created.id).is_active is True
        assert repo.get_by_id(999) is None
