from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "TripDesk"
    ENVIRONMENT: str = "development"
    API_V1_STR: str = "/api/v1"

    # Security
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            v = v.strip("[").strip("]").strip('"').strip("'")
            if not v:
                return []
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        raise ValueError(v)

    # Database - postgresql+asyncpg in deployments, local SQLite otherwise
    DATABASE_URL: str = "sqlite+aiosqlite:///./tripdesk.db"

    # Bootstrap super admin (db/init_db.py)
    INIT_ADMIN_EMAIL: str = "admin@tripdesk.app"
    INIT_ADMIN_PASSWORD: str = ""

    # Official account that authors support notifications
    OFFICIAL_USER_ID: str = "00000000-0000-0000-0000-000000000001"
    OFFICIAL_USERNAME: str = "tripdesk_official"
    OFFICIAL_EMAIL: str = "official@tripdesk.app"
    OFFICIAL_FULL_NAME: str = "TripDesk Official"
    OFFICIAL_PROFILE_PIC: str = "https://cdn.tripdesk.app/brand/official-avatar.png"

    # Object storage (S3 compatible)
    STORAGE_BUCKET: str = ""
    STORAGE_ENDPOINT_URL: str = ""
    STORAGE_REGION: str = "auto"
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""

    # Notification delivery
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_RETRY_DELAY_SECONDS: float = 2.0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file="backend_config.env",
        env_file_encoding="utf-8"
    )

settings = Settings()
