import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from zenyukti.core.errors import DuplicateEmail, InvalidOrExpiredTicket, NotFound
from zenyukti.models.user import User

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "email", "avatar", "hashed_password"}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountDirectory:
    """CRUD over member accounts. Every write commits its own transaction."""

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    @staticmethod
    def find_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create(db: Session, email: str, name: str, password_hash: str) -> User:
        """Insert a new account, raising DuplicateEmail if the email is taken"""
        email = normalize_email(email)

        # Explicit check gives a clean error for the common case
        if AccountDirectory.find_by_email(db, email) is not None:
            raise DuplicateEmail()

        user = User(email=email, name=name, hashed_password=password_hash)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Two registrations raced past the check above; the unique index
            # lets exactly one of them through
            db.rollback()
            raise DuplicateEmail()

        # Refresh to load auto-generated fields (id, timestamps) from database
        db.refresh(user)
        return user

    @staticmethod
    def update(db: Session, user_id: int, **fields) -> User:
        """Partially update name/email/avatar/hashed_password"""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        user = AccountDirectory.find_by_id(db, user_id)
        if user is None:
            raise NotFound()

        if "email" in fields and fields["email"] is not None:
            fields["email"] = normalize_email(fields["email"])
            if fields["email"] != user.email:
                other = db.query(User).filter(
                    User.email == fields["email"], User.id != user.id
                ).first()
                if other is not None:
                    raise DuplicateEmail("Email is already in use by another account")

        for key, value in fields.items():
            setattr(user, key, value)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateEmail("Email is already in use by another account")

        db.refresh(user)
        return user

    @staticmethod
    def set_reset_ticket(db: Session, user: User, digest: str, expires_at: datetime) -> None:
        """Store a new reset ticket digest, replacing any outstanding one"""
        user.password_reset_token = digest
        user.password_reset_expires_at = expires_at
        db.commit()

    @staticmethod
    def consume_reset_ticket(db: Session, digest: str, new_password_hash: str, now: datetime) -> User:
        """
        Set a new password through a reset ticket and invalidate the ticket.

        The match, the expiry check, the password change and the ticket reset
        happen in a single UPDATE, so two requests with the same ticket cannot
        both succeed.
        """
        user = db.query(User).filter(User.password_reset_token == digest).first()
        if user is None:
            raise InvalidOrExpiredTicket()

        updated = (
            db.query(User)
            .filter(
                User.id == user.id,
                User.password_reset_token == digest,
                User.password_reset_expires_at > now,
            )
            .update(
                {
                    User.hashed_password: new_password_hash,
                    User.password_reset_token: None,
                    User.password_reset_expires_at: None,
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            db.rollback()
            raise InvalidOrExpiredTicket()

        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def purge_expired_reset_tickets(db: Session, now: datetime) -> int:
        """Clear reset tickets whose expiry has passed; returns rows touched"""
        purged = (
            db.query(User)
            .filter(
                User.password_reset_token.isnot(None),
                User.password_reset_expires_at <= now,
            )
            .update(
                {User.password_reset_token: None, User.password_reset_expires_at: None},
                synchronize_session=False,
            )
        )
        db.commit()
        return purged


account_directory = AccountDirectory()
