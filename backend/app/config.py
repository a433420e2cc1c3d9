"""Execution-server configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3000

    WORKSPACE: str = "/workspace"
    DEFAULT_TIMEOUT_MS: int = 30000
    EXEC_PATH: str = "/usr/local/bin:/usr/bin:/bin"
    KILL_GRACE_S: float = 2.0

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
