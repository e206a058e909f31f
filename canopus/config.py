"""Configuration loading from .github/canopus.toml, env vars, and CLI overrides."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_LOCATION = Path(".github") / "canopus.toml"


class ConfigError(Exception):
    pass


class GeneralSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    github_organization: str = Field(alias="github-organization", min_length=1)
    offline_checks_only: bool = Field(default=False, alias="offline-checks-only")
    max_concurrent_lookups: int = Field(default=4, alias="max-concurrent-lookups", ge=1)


class OwnershipSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    forbid_email_owners: bool = Field(default=False, alias="forbid-email-owners")
    enforce_github_teams_owners: bool = Field(default=False, alias="enforce-github-teams-owners")
    enforce_one_owner_per_line: bool = Field(default=False, alias="enforce-one-owner-per-line")


class CanopusFile(BaseModel):
    """Schema of the TOML file as written on disk."""

    model_config = ConfigDict(extra="forbid")

    general: GeneralSection
    ownership: OwnershipSection = Field(default_factory=OwnershipSection)


class Config(BaseModel):
    organization: str
    offline_only: bool = False
    forbid_email_owners: bool = False
    enforce_github_teams_owners: bool = False
    enforce_one_owner_per_line: bool = False
    max_concurrent_lookups: int = 4
    github_token: SecretStr = SecretStr("")

    @classmethod
    def from_file(cls, parsed: CanopusFile) -> Config:
        return cls(
            organization=parsed.general.github_organization,
            offline_only=parsed.general.offline_checks_only,
            max_concurrent_lookups=parsed.general.max_concurrent_lookups,
            forbid_email_owners=parsed.ownership.forbid_email_owners,
            enforce_github_teams_owners=parsed.ownership.enforce_github_teams_owners,
            enforce_one_owner_per_line=parsed.ownership.enforce_one_owner_per_line,
        )


def _read_toml(location: Path) -> dict[str, Any]:
    if not location.exists():
        raise ConfigError(f"expecting configuration at : {location}")
    if not location.is_file():
        raise ConfigError(f"expecting a file not a directory : {location}")

    logger.debug("Found canopus config at : %s", location)
    try:
        with open(location, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"malformed configuration at {location} : {e}") from e


def load_config(
    project_root: str | Path,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Config:
    """Load config from the TOML file, env vars, and caller overrides (in that priority)."""
    # 1. Load from TOML file
    location = Path(config_path) if config_path else Path(project_root) / DEFAULT_CONFIG_LOCATION
    try:
        config = Config.from_file(CanopusFile.model_validate(_read_toml(location)))
    except ValidationError as e:
        raise ConfigError(f"invalid configuration at {location} :\n{e}") from e

    raw = config.model_dump()
    raw["github_token"] = config.github_token

    # 2. Env var overrides
    if tok := os.environ.get("GITHUB_TOKEN"):
        raw["github_token"] = tok
    if os.environ.get("CANOPUS_OFFLINE", "").lower() in ("1", "true", "yes"):
        raw["offline_only"] = True

    # 3. Caller overrides (CLI flags)
    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})

    return Config(**raw)
