from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    PORT: int = 8000
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "postgresql://postgres:postgres@db:5432/elibrary"
    SECRET_KEY: str = "change_this_secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    FRONTEND_ORIGINS: str = "*"

    # Cloudinary
    CLOUDINARY_CLOUD: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None
    CLOUDINARY_API_URL: str = "https://api.cloudinary.com/v1_1"
    ASSET_STORE_TIMEOUT_SECONDS: float = 30

    # Multipart uploads are staged here before being pushed to Cloudinary
    UPLOAD_DIR: str = "public/data/uploads"
    MAX_UPLOAD_BYTES: int = 10_000_000

    @property
    def allow_origins(self) -> List[str]:
        return [origin.strip() for origin in self.FRONTEND_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

settings = Settings()


def get_settings() -> Settings:
    return settings
