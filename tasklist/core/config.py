from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from fastapi import Depends
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Annotated

load_dotenv()

DEV_ACCESS_SECRET = "dev-access-secret-change-me-in-production"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me-in-production"


class Settings(BaseSettings):
    """
    Application settings, read from the environment (and `.env`).

    Signing secrets are optional fields: outside strict mode they fall back to
    development defaults, in strict mode a missing secret is a startup error.
    Strict mode is on when `strict_mode` is set, otherwise in production.
    """

    model_config = SettingsConfigDict(extra="ignore")

    environment: Literal["development", "test", "production"] = "development"
    strict_mode: bool | None = None

    jwt_access_secret: str | None = None
    jwt_refresh_secret: str | None = None
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    bcrypt_rounds: int = 10

    database_url: str = "sqlite+aiosqlite:///./tasklist.db"
    database_echo: bool = False
    create_tables_on_startup: bool = True

    seed_demo_user: bool = True
    demo_username: str = "carlos"
    demo_password: str = "secret123"

    cors_origin: str = "*"

    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 15 * 60
    login_rate_limit: int = 10
    refresh_rate_limit: int = 30

    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_strict(self) -> bool:
        if self.strict_mode is not None:
            return self.strict_mode
        return self.is_production

    @model_validator(mode="after")
    def _resolve_secrets(self):
        if self.is_strict:
            missing = [
                name.upper()
                for name in ("jwt_access_secret", "jwt_refresh_secret")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Missing required settings: {', '.join(missing)}")
            if self.jwt_access_secret == self.jwt_refresh_secret:
                raise ValueError(
                    "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different"
                )
        else:
            self.jwt_access_secret = self.jwt_access_secret or DEV_ACCESS_SECRET
            self.jwt_refresh_secret = self.jwt_refresh_secret or DEV_REFRESH_SECRET

        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


SettingsDep = Annotated[Settings, Depends(get_settings)]
