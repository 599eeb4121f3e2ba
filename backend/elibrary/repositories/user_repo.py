from typing import Optional

from elibrary.core.security import hash_password
from elibrary.db.base import User as DbUser
from elibrary.domain.entities import User as DomainUser
from elibrary.domain.interfaces import IUserReader


class UserRepository(IUserReader):
    """Repository for User persistence operations.

    Maps between the `users` table and the domain `User` handed to the
    purchase flow.
    """

    def __init__(self, db_session) -> None:
        self.db = db_session

    def get_by_id(self, user_id: int) -> Optional[DomainUser]:
        """Get user by ID, returning domain entity."""
        db_user = self.db.get(DbUser, user_id)
        return self._to_domain(db_user) if db_user else None

    def get_by_email(self, email: str) -> Optional[DomainUser]:
        """Get user by email, returning domain entity."""
        db_user = self.db.query(DbUser).filter_by(email=email.strip().lower()).first()
        return self._to_domain(db_user) if db_user else None

    def create(self, email: str, name: str, password: Optional[str] = None) -> DomainUser:
        """Create and commit a new user."""
        db_user = DbUser(
            email=email.strip().lower(),
            name=name,
            password_hash=hash_password(password) if password else None,
        )
        self.db.add(db_user)
        self.db.commit()
        self.db.refresh(db_user)
        return self._to_domain(db_user)

    def _to_domain(self, db_user: DbUser) -> DomainUser:
        return DomainUser(
            id=db_user.id,
            email=db_user.email,
            name=db_user.name,
            is_active=db_user.is_active,
            created_at=db_user.created_at,
        )
