from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration for backoffice-api.

    All persistence, storage and authentication live in the hosted Supabase
    project; this service only needs its URL, the public (anon) API key and
    the names of the tables, buckets and stored procedures it talks to.

    Tokens are verified with SUPABASE_JWT_SECRET (HS256) when it is set,
    otherwise against the project JWKS published by Supabase Auth.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # --- Service ---
    app_name: str = Field(default="backoffice-api", validation_alias="APP_NAME")
    app_version: str = Field(default="0.1.0", validation_alias="APP_VERSION")
    environment: str = Field(default="local", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CSV allowlist, e.g. "http://localhost:3000,http://127.0.0.1:3000"
    cors_allowed_origins: str = Field(default="http://localhost:3000", validation_alias="CORS_ALLOWED_ORIGINS")

    # --- Supabase project ---
    supabase_url: str = Field(default="http://localhost:54321", validation_alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", validation_alias="SUPABASE_ANON_KEY")
    http_timeout_seconds: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT_SECONDS")

    # --- Auth (JWT - JSON Web Token) ---
    supabase_jwt_secret: Optional[str] = Field(default=None, validation_alias="SUPABASE_JWT_SECRET")
    jwt_audience: str = Field(default="authenticated", validation_alias="JWT_AUDIENCE")
    jwt_algorithms: str = Field(default="HS256,RS256,ES256", validation_alias="JWT_ALGORITHMS")
    jwks_cache_seconds: int = Field(default=300, validation_alias="JWKS_CACHE_SECONDS")

    # --- Row store / storage names ---
    products_table: str = Field(default="products", validation_alias="PRODUCTS_TABLE")
    product_images_table: str = Field(default="product_images", validation_alias="PRODUCT_IMAGES_TABLE")
    profiles_table: str = Field(default="profiles", validation_alias="PROFILES_TABLE")
    product_images_bucket: str = Field(default="product-images", validation_alias="PRODUCT_IMAGES_BUCKET")
    avatars_bucket: str = Field(default="avatars", validation_alias="AVATARS_BUCKET")

    # --- Stored procedures ---
    create_product_rpc: str = Field(default="create_product_with_price", validation_alias="CREATE_PRODUCT_RPC")
    update_product_rpc: str = Field(default="update_product_with_price", validation_alias="UPDATE_PRODUCT_RPC")

    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def jwt_algorithms_list(self) -> list[str]:
        return [a.strip() for a in self.jwt_algorithms.split(",") if a.strip()]

    @property
    def supabase_base_url(self) -> str:
        return self.supabase_url.rstrip("/")

    @property
    def jwks_url(self) -> str:
        return f"{self.supabase_base_url}/auth/v1/.well-known/jwks.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
