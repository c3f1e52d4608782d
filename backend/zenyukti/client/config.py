from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from zenyukti.core.urls import origin_of


class ClientSettings(BaseSettings):
    # Base URL of the accounts API, including the /api prefix
    API_BASE_URL: str = "http://localhost:5000/api"
    # Origin that relative avatar paths are resolved against
    # Derived from API_BASE_URL when unset
    API_ORIGIN: Optional[str] = None
    # Outbound requests fail with NetworkError after this long
    REQUEST_TIMEOUT_SECONDS: float = 15.0
    # JSON file holding the token and user snapshot
    STORAGE_PATH: Path = Path.home() / ".zenyukti" / "auth.json"

    def get_api_origin(self) -> str:
        return origin_of(self.API_ORIGIN or self.API_BASE_URL)

    class Config:
        env_prefix = "ZENYUKTI_"
        env_file = ".env"
        case_sensitive = True
        # The server Settings share the .env file
        extra = "ignore"


client_settings = ClientSettings()
