"""Host-side configuration loaded from environment variables.

Every field can be set as ``SKILL_SANDBOX_<FIELD>`` (or in a ``.env`` file);
command-line flags take precedence over these values.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings

DEFAULT_TECHNOLOGIES = (
    "Debian (python:3.11-slim base), Python 3.11, bash, git, curl, wget, "
    "pip, uv, build-essential, apt"
)


class SandboxSettings(BaseSettings):
    TIMEOUT_MS: int = 30000
    WORKDIR: str = "/workspace"
    MOUNT_PATH: str | None = None
    MOUNT_WORKSPACE: bool = True
    CONTAINER_NAME: str | None = None
    IMAGE: str | None = None
    DEFAULT_IMAGE: str = "skill-sandbox:latest"

    SKILLS_PATH: str = ".claude/skills"
    TECHNOLOGIES: str = DEFAULT_TECHNOLOGIES
    DISABLED_TOOLS: str = ""
    PREWARM: bool = True

    HOST: str = "localhost"
    CONTAINER_PORT: int = 3000
    HEALTH_ATTEMPTS: int = 30
    HEALTH_INTERVAL_S: float = 1.0
    HTTP_GRACE_S: float = 5.0

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_prefix = "SKILL_SANDBOX_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def disabled_tools(self) -> list[str]:
        return [t.strip() for t in self.DISABLED_TOOLS.split(",") if t.strip()]


settings = SandboxSettings()
