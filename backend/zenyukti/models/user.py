from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from zenyukti.core.database import Base


class User(Base):
    """
    Member account.

    Stores login credentials, the public profile (name, avatar) and the
    pending password reset ticket, if any.
    Passwords and reset tickets are stored as hashes (never plaintext).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Lower-cased before every write; the unique index is what makes
    # concurrent registrations with the same email fail
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    # Relative /uploads/... path for local uploads, or an absolute URI
    avatar = Column(String, nullable=True)
    role = Column(String, nullable=False, default="member")
    # SHA-256 hex digest of the outstanding reset ticket
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime(timezone=True), nullable=True)
    # Timestamps are set automatically by database
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
