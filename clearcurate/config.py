"""
Configuration management for ClearCurate.

Loads configuration from environment variables and .env file. A config value is
built once by the entry point and handed to every component that needs it.
"""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class CurateConfig(BaseSettings):
    """Configuration settings for ClearCurate."""

    # Data directories
    data_dir: Path = Field(
        default=Path.home() / ".clearcurate",
        description="Base directory for all file-backed stores"
    )
    curations_dir: Optional[Path] = Field(None, description="Directory for curation documents")
    definitions_dir: Optional[Path] = Field(None, description="Directory for computed definitions")
    harvest_dir: Optional[Path] = Field(None, description="Directory for summarized harvest data")

    # Provider selection
    curation_store_provider: str = Field("memory", description="Curation store: memory or file")
    definition_store_provider: str = Field("memory", description="Definition store: memory or file")
    harvest_store_provider: str = Field("memory", description="Harvest store: memory or file")
    cache_provider: str = Field("memory", description="Cache: memory or null")
    cache_ttl_seconds: int = Field(60 * 60 * 24, gt=0, description="TTL for curation listings")

    # GitHub curation repository
    github_owner: str = Field("clearlydefined", description="Owner of the curation repository")
    github_repo: str = Field("curated-data", description="Curation repository name")
    github_branch: str = Field("master", description="Default branch of the curation repository")
    github_token: Optional[str] = Field(None, description="Token used by the service identity")
    github_api_url: str = Field("https://api.github.com", description="GitHub REST API base URL")
    github_status_context: str = Field("ClearCurate", description="Context name for commit statuses")

    # Service identity used for automatic curation
    service_login: str = Field("clearcurate-bot", description="Login used for automatic contributions")
    service_email: Optional[str] = Field(None, description="Email used for automatic contributions")

    # Web site used for preview links
    website_url: str = Field("https://clearlydefined.io", description="Base URL of the review web site")

    # Aggregation
    aggregator_precedence: List[str] = Field(
        default_factory=lambda: ["clearlydefined", "reuse", "licensee", "scancode", "fossology", "cdsource"],
        description="Tool names in descending precedence"
    )

    # Features
    multiversion_curation_feature_flag: bool = Field(
        False, description="Fold license-matching sibling revisions into contributions"
    )

    # Logging
    log_level: str = Field("INFO", description="Log level for the clearcurate logger")
    log_json: bool = Field(False, description="Emit JSON formatted log lines")

    model_config = {
        "env_prefix": "CLEARCURATE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def model_post_init(self, __context) -> None:
        """Initialize derived paths after loading config."""
        if self.curations_dir is None:
            self.curations_dir = self.data_dir / "curations"
        if self.definitions_dir is None:
            self.definitions_dir = self.data_dir / "definitions"
        if self.harvest_dir is None:
            self.harvest_dir = self.data_dir / "harvest"

    def ensure_directories(self) -> None:
        """Create all necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.curations_dir.mkdir(parents=True, exist_ok=True)
        self.definitions_dir.mkdir(parents=True, exist_ok=True)
        self.harvest_dir.mkdir(parents=True, exist_ok=True)
