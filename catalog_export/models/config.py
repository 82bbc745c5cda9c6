"""Configuration management for the catalog export pipeline."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from catalog_export.processor.transformer import validate_fields


class PipelineConfig(BaseModel):
    """Export pipeline configuration."""

    # Commerce API connection
    commerce_base_url: Optional[str] = Field(
        default=None, description="Commerce REST base URL, e.g. https://shop.example.com/rest/V1"
    )
    commerce_token: Optional[str] = Field(default=None, description="Pre-issued bearer token")
    commerce_username: Optional[str] = Field(default=None, description="Admin username for token exchange")
    commerce_password: Optional[str] = Field(default=None, description="Admin password for token exchange")
    products_path: str = Field(default="/products", description="Products endpoint path")
    category_path: str = Field(default="/categories/{id}", description="Single category endpoint path")
    inventory_path: str = Field(default="/inventory/source-items", description="Inventory search endpoint path")
    token_path: str = Field(default="/integration/admin/token", description="Admin token endpoint path")

    # HTTP and retry policy
    request_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    max_retries: int = Field(default=3, description="Retry attempts after the first failure")
    retry_delay: float = Field(default=1.0, description="Fixed delay, or exponential base delay, between retries in seconds")
    retry_backoff: str = Field(default="fixed", description="Backoff between retries: fixed or exponential")
    retry_max_delay: float = Field(default=4.0, description="Maximum exponential retry delay")
    retry_jitter_max: float = Field(default=0.5, description="Maximum jitter added to exponential retry delays")
    retryable_status_codes: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes treated as transient"
    )

    # Pagination and batching
    page_size: int = Field(default=100, description="Products per page")
    max_pages: int = Field(default=25, description="Maximum number of product pages")
    category_batch_size: int = Field(default=20, description="Concurrent category requests per batch")
    inventory_batch_size: int = Field(default=50, description="SKUs per inventory search request")
    inventory_concurrency: int = Field(default=5, description="Concurrent inventory requests per batch")
    batch_pause: float = Field(default=0.075, description="Pause between batches in seconds")

    # Caching
    category_cache_ttl: float = Field(default=1800.0, description="Category cache TTL in seconds")
    response_cache_ttl: float = Field(default=300.0, description="HTTP response cache TTL in seconds")

    # CSV assembly
    csv_chunk_size: int = Field(default=100, description="Records serialized per chunk")
    compression_level: int = Field(default=6, description="gzip compression level (0-9)")
    export_fields: List[str] = Field(
        default=["sku", "name", "price", "qty", "categories", "images"],
        description="Exported fields, in column order"
    )
    media_base_url: Optional[str] = Field(default=None, description="Prefix for relative image paths")

    # Storage
    csv_filename: str = Field(default="products.csv.gz", description="Fixed export filename")
    storage_provider: str = Field(default="s3", description="Storage backend: s3 or files")
    s3_bucket: Optional[str] = Field(default=None, description="S3 bucket name")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_prefix: str = Field(default="", description="S3 key prefix")
    files_directory: str = Field(default="out/files", description="Root directory of the file service")
    download_base_url: Optional[str] = Field(
        default=None, description="Download action URL; fileName is appended as a query parameter"
    )

    # Pipeline
    total_timeout: float = Field(default=300.0, description="Maximum pipeline execution time")
    track_memory: bool = Field(default=True, description="Record peak traced memory")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("commerce_base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate URL format and strip trailing slashes."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator(
        "page_size", "max_pages", "category_batch_size",
        "inventory_batch_size", "inventory_concurrency", "csv_chunk_size"
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got: {v}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must not be negative, got: {v}")
        return v

    @field_validator("compression_level")
    @classmethod
    def validate_compression_level(cls, v: int) -> int:
        if not 0 <= v <= 9:
            raise ValueError(f"compression_level must be between 0 and 9, got: {v}")
        return v

    @field_validator("total_timeout", "request_timeout")
    @classmethod
    def validate_timeout(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got: {v}")
        return v

    @field_validator("retry_backoff")
    @classmethod
    def validate_retry_backoff(cls, v: str) -> str:
        if v not in ("fixed", "exponential"):
            raise ValueError(f"retry_backoff must be 'fixed' or 'exponential', got: {v}")
        return v

    @field_validator("storage_provider")
    @classmethod
    def validate_storage_provider(cls, v: str) -> str:
        if v not in ("s3", "files"):
            raise ValueError(f"storage_provider must be 's3' or 'files', got: {v}")
        return v

    @field_validator("export_fields")
    @classmethod
    def validate_export_fields(cls, v: List[str]) -> List[str]:
        return validate_fields(v)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration with environment variable overrides."""
        return cls(**env_overrides())


ENV_MAPPINGS: Dict[str, str] = {
    "COMMERCE_BASE_URL": "commerce_base_url",
    "COMMERCE_ADMIN_TOKEN": "commerce_token",
    "COMMERCE_ADMIN_USERNAME": "commerce_username",
    "COMMERCE_ADMIN_PASSWORD": "commerce_password",
    "CATALOG_EXPORT_TIMEOUT": "total_timeout",
    "CATALOG_EXPORT_REQUEST_TIMEOUT": "request_timeout",
    "CATALOG_EXPORT_MAX_RETRIES": "max_retries",
    "CATALOG_EXPORT_RETRY_BACKOFF": "retry_backoff",
    "CATALOG_EXPORT_PAGE_SIZE": "page_size",
    "CATALOG_EXPORT_MAX_PAGES": "max_pages",
    "CATALOG_EXPORT_LOG_LEVEL": "log_level",
    "CATALOG_EXPORT_STORAGE": "storage_provider",
    "CATALOG_EXPORT_FILENAME": "csv_filename",
    "CATALOG_EXPORT_S3_BUCKET": "s3_bucket",
    "CATALOG_EXPORT_S3_REGION": "s3_region",
    "CATALOG_EXPORT_S3_PREFIX": "s3_prefix",
    "CATALOG_EXPORT_FILES_DIRECTORY": "files_directory",
    "CATALOG_EXPORT_DOWNLOAD_BASE_URL": "download_base_url",
}


def env_overrides() -> Dict[str, Any]:
    """Values of the mapped environment variables that are actually set."""
    return {
        field_name: _coerce(field_name, os.environ[env_var])
        for env_var, field_name in ENV_MAPPINGS.items()
        if env_var in os.environ
    }


def _coerce(field_name: str, value: str):
    """Convert an environment string to the field's declared type."""
    annotation = PipelineConfig.model_fields[field_name].annotation
    if annotation is int:
        return int(value)
    if annotation is float:
        return float(value)
    if annotation is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    return value


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[PipelineConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> PipelineConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged PipelineConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict = {}

        if self.config_file.exists():
            with open(self.config_file, "r") as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        merged_dict = PipelineConfig(**config_dict).model_dump()

        # Every variable that is set wins over YAML, even when it restates a default
        merged_dict.update(env_overrides())

        if cli_overrides:
            cli_overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            merged_dict.update(cli_overrides)

        self._config = PipelineConfig(**merged_dict)
        return self._config

    @property
    def config(self) -> PipelineConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
