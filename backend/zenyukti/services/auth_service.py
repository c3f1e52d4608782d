import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from fastapi import UploadFile, status
from sqlalchemy.orm import Session
from zenyukti.core.config import settings
from zenyukti.core.errors import InvalidCredentials, NotFound, UploadRejected
from zenyukti.core.security import (
    dummy_verify,
    generate_reset_ticket,
    get_password_hash,
    hash_reset_ticket,
    issue_access_token,
    verify_password,
)
from zenyukti.models.user import User
from zenyukti.services.account_directory import account_directory
from zenyukti.storage.local_storage import storage

logger = logging.getLogger(__name__)

# extension -> (accepted content types, magic byte check)
AVATAR_TYPES = {
    ".jpg": ({"image/jpeg", "image/jpg"}, lambda head: head.startswith(b"\xff\xd8\xff")),
    ".jpeg": ({"image/jpeg", "image/jpg"}, lambda head: head.startswith(b"\xff\xd8\xff")),
    ".png": ({"image/png"}, lambda head: head.startswith(b"\x89PNG\r\n\x1a\n")),
    ".gif": ({"image/gif"}, lambda head: head[:6] in (b"GIF87a", b"GIF89a")),
    ".webp": ({"image/webp"}, lambda head: head[:4] == b"RIFF" and head[8:12] == b"WEBP"),
}

UPLOAD_CHUNK_SIZE = 64 * 1024


class AuthService:
    @staticmethod
    def register(db: Session, name: str, email: str, password: str) -> tuple[User, str]:
        """Create an account and open a session for it"""
        # Never store plaintext passwords
        user = account_directory.create(db, email, name, get_password_hash(password))
        token, _ = issue_access_token(user.id)
        logger.info(f"Registered user {user.id}")
        return user, token

    @staticmethod
    def login(db: Session, email: str, password: str) -> tuple[User, str]:
        user = account_directory.find_by_email(db, email)

        if user is None:
            # Burn a hash so unknown emails take as long as wrong passwords
            dummy_verify()
            logger.info("Failed login for unknown email")
            raise InvalidCredentials()

        if not verify_password(password, user.hashed_password):
            logger.info(f"Failed login for user {user.id}")
            raise InvalidCredentials()

        token, _ = issue_access_token(user.id)
        return user, token

    @staticmethod
    def get_me(db: Session, user_id: int) -> User:
        user = account_directory.find_by_id(db, user_id)
        if user is None:
            # Account vanished after the token was issued
            raise NotFound()
        return user

    @staticmethod
    def update_profile(db: Session, user_id: int, name: str, email: str) -> User:
        return account_directory.update(db, user_id, name=name, email=email)

    @staticmethod
    async def read_avatar(file: Optional[UploadFile]) -> tuple[bytes, str]:
        """
        Read and validate an avatar upload without touching storage.

        Returns (content, extension). The size limit is enforced while reading
        so oversized uploads are never held in memory whole.
        """
        if file is None or not file.filename:
            raise UploadRejected("Please upload an image file")

        extension = Path(file.filename).suffix.lower()
        if extension not in AVATAR_TYPES:
            raise UploadRejected("Only JPEG, PNG, GIF and WebP images are allowed")

        content_types, matches_signature = AVATAR_TYPES[extension]
        if (file.content_type or "").lower() not in content_types:
            raise UploadRejected("Only JPEG, PNG, GIF and WebP images are allowed")

        chunks = []
        size = 0
        while True:
            chunk = await file.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.MAX_AVATAR_SIZE:
                limit_mb = settings.MAX_AVATAR_SIZE / (1024 * 1024)
                raise UploadRejected(
                    f"File too large. Maximum size is {limit_mb:g}MB",
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                )
            chunks.append(chunk)

        content = b"".join(chunks)
        if not content:
            raise UploadRejected("Uploaded file is empty")
        if not matches_signature(content[:16]):
            raise UploadRejected("File content does not match its image type")

        return content, extension

    @staticmethod
    async def upload_avatar(db: Session, user_id: int, file: Optional[UploadFile]) -> User:
        user = AuthService.get_me(db, user_id)
        content, extension = await AuthService.read_avatar(file)

        previous = user.avatar
        avatar_url = storage.save_avatar(content, user.id, extension)
        try:
            user = account_directory.update(db, user.id, avatar=avatar_url)
        except Exception:
            # Keep storage in step with the row that failed to update
            storage.delete_file(avatar_url)
            raise

        if previous and previous != avatar_url and storage.delete_file(previous):
            logger.info(f"Replaced avatar for user {user.id}")
        return user

    @staticmethod
    def forgot_password(db: Session, email: str) -> Optional[str]:
        """
        Issue a reset ticket for the account behind email.

        Returns the raw ticket for the mailer, or None when no account
        exists. Both paths generate and hash a ticket so they do the same
        work; callers must respond identically either way.
        """
        ticket, digest = generate_reset_ticket()
        user = account_directory.find_by_email(db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        account_directory.set_reset_ticket(db, user, digest, expires_at)
        logger.info(f"Password reset ticket issued for user {user.id}")
        return ticket

    @staticmethod
    def reset_password(db: Session, ticket: str, password: str) -> tuple[User, str]:
        user = account_directory.consume_reset_ticket(
            db,
            hash_reset_ticket(ticket),
            get_password_hash(password),
            datetime.now(timezone.utc),
        )
        token, _ = issue_access_token(user.id)
        logger.info(f"Password reset completed for user {user.id}")
        return user, token


auth_service = AuthService()
