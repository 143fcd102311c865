from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    port: int = 8000
    data_dir: str = "/data"
    files_dir: str = "/data/files"
    database_url: str | None = None

    storage_backend: Literal["disk", "blob", "kv"] = "disk"
    slug_strategy: Literal["filename", "random"] = "filename"

    # key-value index + object store (storage_backend="kv")
    kv_rest_url: str = ""
    kv_rest_token: str = ""
    object_store_url: str = ""
    object_store_token: str = ""

    admin_username: str = "admin"
    admin_password: str = "change-me"
    session_max_age: int = 60 * 60 * 24

    environment: Literal["development", "production"] = "development"
    log_level: str = "INFO"

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir.rstrip('/')}/reportshare.db"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
