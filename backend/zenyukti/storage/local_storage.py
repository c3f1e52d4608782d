import uuid
from pathlib import Path
from typing import Optional
from zenyukti.core.config import settings

# URL prefix the upload directory is mounted under in main.py
UPLOADS_URL_PREFIX = "/uploads"


class LocalStorage:
    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def save_avatar(self, content: bytes, user_id: int, extension: str) -> str:
        """Write avatar bytes and return the relative URL they are served under"""
        unique_filename = f"{uuid.uuid4().hex}{extension}"
        user_dir = self.upload_dir / "avatars" / str(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)

        with open(user_dir / unique_filename, "wb") as f:
            f.write(content)

        return f"{UPLOADS_URL_PREFIX}/avatars/{user_id}/{unique_filename}"

    def get_file_path(self, url: str) -> Optional[Path]:
        """Map a relative /uploads/... URL back to a path inside upload_dir"""
        if not url or not url.startswith(f"{UPLOADS_URL_PREFIX}/"):
            return None
        relative = url[len(UPLOADS_URL_PREFIX) + 1:]
        path = (self.upload_dir / relative).resolve()
        # Refuse anything that escapes the upload directory
        if self.upload_dir.resolve() not in path.parents:
            return None
        return path

    def delete_file(self, url: str) -> bool:
        """Delete a locally stored file; absolute or foreign URLs are left alone"""
        file_path = self.get_file_path(url)
        if file_path is not None and file_path.exists():
            file_path.unlink()
            return True
        return False


storage = LocalStorage()
