from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

from cryptopay.services.token import validate_token


class Settings(BaseSettings):
    cryptopay_token: str
    webhook_path: str = "/cryptopay/webhook"
    max_body_size: int = 1_048_576  # 1 MiB
    handler_workers: int | None = None
    handler_timeout: float | None = None
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("cryptopay_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        validate_token(value)
        return value

    @field_validator("webhook_path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("webhook_path must start with '/'")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
