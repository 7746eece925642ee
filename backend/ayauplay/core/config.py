# backend/ayauplay/core/config.py
from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process-wide settings, read once at startup and frozen afterwards.

    - S3/CloudFront settings are only required when STORAGE_MODE=s3
    - local mode keeps tracks on disk and signs with a PEM from the env,
      so the API can boot in dev / CI without AWS credentials
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="dev", alias="ENV")

    # Storage
    # local = tracks live under LOCAL_STORE_DIR
    # s3    = songs bucket (required)
    storage_mode: str = Field(default="local", alias="STORAGE_MODE")  # local | s3
    songs_bucket: Optional[str] = Field(default=None, alias="SONGS_BUCKET")
    aws_region: Optional[str] = Field(default=None, alias="AWS_REGION")
    local_store_dir: str = Field(default=".ayauplay_store", alias="LOCAL_STORE_DIR")

    # CloudFront signing
    cloudfront_domain: str = Field(default="", alias="CLOUDFRONT_DOMAIN")
    key_pair_id: str = Field(default="", alias="KEY_PAIR_ID")
    signing_key_source: str = Field(default="ssm", alias="SIGNING_KEY_SOURCE")  # ssm | env
    private_key_param: Optional[str] = Field(default=None, alias="PRIVATE_KEY_PARAM")
    cloudfront_private_key_pem: str = Field(default="", alias="CLOUDFRONT_PRIVATE_KEY_PEM")

    # Playback link lifetime is fixed in services/signer.py (SIGNED_URL_TTL)
    signing_key_cache_ttl_sec: int = Field(default=300, ge=0, alias="SIGNING_KEY_CACHE_TTL_SEC")
    signing_max_workers: int = Field(default=8, ge=1, alias="SIGNING_MAX_WORKERS")
    signing_timeout_sec: float = Field(default=10.0, gt=0, alias="SIGNING_TIMEOUT_SEC")

    # Security
    admin_group: str = Field(default="admin", alias="ADMIN_GROUP")
    internal_api_key: str = Field(default="", alias="INTERNAL_API_KEY")

    # CORS
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")  # comma-separated or "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def bucket_name(self) -> str:
        return self.songs_bucket or f"songs-bucket-{self.env}"

    @property
    def private_key_param_name(self) -> str:
        return self.private_key_param or f"/cloudfront/{self.env}/private-key"

    def s3_required(self) -> bool:
        return self.storage_mode.strip().lower() == "s3"

    def validate_signing_or_raise(self) -> None:
        """
        Call this ONLY when a URL is actually about to be signed.
        This avoids boot-time failures in local/dev/CI.
        """
        missing = []
        if not self.cloudfront_domain:
            missing.append("CLOUDFRONT_DOMAIN")
        if not self.key_pair_id:
            missing.append("KEY_PAIR_ID")
        if self.signing_key_source.strip().lower() == "env" and not self.cloudfront_private_key_pem:
            missing.append("CLOUDFRONT_PRIVATE_KEY_PEM")

        if missing:
            raise RuntimeError(
                "URL signing is not configured, required env vars are missing: "
                + ", ".join(missing)
            )


settings = Settings()
