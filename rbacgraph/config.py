from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Connector configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env",), env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    app_env: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"
    log_json: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    # Cluster access: kubeconfig, in-cluster service account, or explicit token
    kube_context: str | None = None
    kube_config_path: str | None = Field(default=None, alias="KUBE_CONFIG_PATH")
    kubeconfig_data: str | None = Field(default=None, description="Inline kubeconfig YAML")
    service_account_token_path: str | None = None
    kube_api_server: str | None = None
    kube_token: str | None = None
    kube_ca_data: str | None = None
    kube_insecure_skip_tls_verify: bool = False
    # Sync behaviour
    page_size: int = Field(default=500, gt=0, description="Upstream list limit per page")
    namespace_cache_ttl_seconds: int = Field(default=300, ge=0)
    binding_cache_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="0 keeps the binding snapshot for the process lifetime",
    )
    listing_ttl_seconds: int = Field(
        default=600,
        gt=0,
        description="How long an unfinished HTTP listing keeps its syncer",
    )
    sync_pods: bool = True

    @model_validator(mode="after")
    def _check_auth_modes(self) -> "Settings":
        if self.kube_token and not self.kube_api_server:
            raise ValueError("kube_token requires kube_api_server")
        if self.kube_token and (self.kube_config_path or self.kubeconfig_data):
            raise ValueError("kube_token and a kubeconfig are mutually exclusive")
        if self.kube_config_path and self.kubeconfig_data:
            raise ValueError("kube_config_path and kubeconfig_data are mutually exclusive")
        return self

    @computed_field
    @property
    def is_debug(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
