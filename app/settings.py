from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # JWT / Auth (Supabase access tokens)
    SUPABASE_JWT_SECRET: Optional[str] = Field(None, description="Secret used to verify Supabase JWTs")
    JWT_ALGO: str = Field("HS256", description="JWT signing algorithm")
    JWT_AUDIENCE: Optional[str] = Field("authenticated", description="Expected 'aud' claim")

    @field_validator("JWT_ALGO")
    @classmethod
    def _jwt_algo_upper(cls, v: str) -> str:
        return (v or "HS256").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
