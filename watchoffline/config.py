# watchoffline/config.py
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv(override=True)


def split_csv(val: str) -> List[str]:
    if not val:
        return []
    return [p.strip() for p in val.replace(";", ",").split(",") if p.strip()]


class Settings(BaseSettings):
    APP_NAME: str = "WatchOffline"

    # env / debug
    ENV: str = Field(default="dev", description="dev|prod")
    LOG_LEVEL: str = Field(default="INFO", description="Level for the application loggers")

    # database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./watchoffline.db",
        description="Playlists and vault entries live in the same database",
    )

    # credential vault
    VAULT_KEY_FILE: str = Field(default="./vault.key", description="Fernet key, created on first use")

    # loopback servers
    GATEWAY_HOST: str = Field(default="127.0.0.1", description="Gateway binds loopback only")
    GATEWAY_PORT: int = Field(default=8081, description="Remote share proxy port")
    LOCAL_SERVER_PORT: int = Field(default=8080, description="Local file server port")
    LOCAL_ROOTS: str = Field(default="", description="comma/semicolon-separated absolute paths")
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # share protocol
    SHARE_DEFAULT_PORT: int = Field(default=445, description="Used when discovery or the user gives no port")
    DISCOVERY_SECONDS: float = Field(default=4.0, description="How long a discovery scan listens")

    # cover metadata
    COVER_API_URL: str = Field(default="", description="GET <url>?q=<query>; empty disables lookups")
    COVER_TIMEOUT: float = 3.5
    COVER_WORKERS: int = 16
    PLACEHOLDER_POSTER: str = Field(
        default="https://via.placeholder.com/300x450.png?text=No+Cover",
        description="Used whenever a lookup yields no poster",
    )

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def local_roots(self) -> List[str]:
        return split_csv(self.LOCAL_ROOTS)


settings = Settings()
