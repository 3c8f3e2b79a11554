"""
Application configuration
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 5000


class Settings(BaseSettings):
    """Application settings"""

    # API
    HOST: str = "127.0.0.1"
    PORT: int = DEFAULT_PORT
    API_TITLE: str = "Crate Worker"
    API_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Toolchain
    CARGO_BIN: str = "cargo"
    CARGO_EXTRA_ARGS: list[str] = []      # JSON list in the environment
    BUILD_TIMEOUT: int = 600              # seconds, 0 disables

    # Intake / workspace
    MAX_BODY_BYTES: int | None = None     # unset = unlimited
    WORKSPACE_ROOT: str | None = None     # unset = platform temp dir

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    @field_validator("PORT", mode="before")
    @classmethod
    def fallback_port(cls, v):
        """An unparsable or out-of-range PORT falls back to the default."""
        try:
            port = int(v)
        except (TypeError, ValueError):
            return DEFAULT_PORT
        if not 0 < port < 65536:
            return DEFAULT_PORT
        return port

    @field_validator("BUILD_TIMEOUT", "MAX_BODY_BYTES")
    @classmethod
    def non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("must be >= 0")
        return v

    @property
    def base_url(self) -> str:
        return f"http://{self.HOST}:{self.PORT}"


settings = Settings()
