"""Pydantic settings loaded from the environment (GT4_ prefix) and .env."""
from pydantic import Field, PrivateAttr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Upstream endpoints
    api_base_url: str = "https://gcaptcha4.geevisit.com"
    static_base_url: str = "https://static.geetest.com"
    lang: str = "eng"
    http_timeout_s: float = 15.0
    proxy: str = ""

    # Verification loop
    max_attempts: int = Field(10, ge=1)
    # None keeps the search unbounded, like the vendor's own client
    pow_max_bits: int | None = None

    # Versioned constants
    constants_file: str = ""
    mapping: str = ""
    auxiliary: dict[str, str] = Field(default_factory=dict)
    device_id: str = ""
    _has_static: bool = PrivateAttr(False)

    # Service
    database_url: str = "./gt4solver.db"
    rate_limit_requests: int = 10
    rate_limit_window_s: int = 60

    @model_validator(mode="after")
    def derive_constants_source(self) -> "Settings":
        self._has_static = bool(self.mapping.strip())
        return self

    @property
    def has_static_constants(self) -> bool:
        return self._has_static

    model_config = SettingsConfigDict(
        env_prefix="GT4_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
