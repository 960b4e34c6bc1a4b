# SPDX-License-Identifier: Apache-2.0
"""Pydantic configuration models for the import engine."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from importpipe.imports.domain.collaborators import SCHEDULE_GRACE_MS
from importpipe.imports.domain.value_objects import DispatchSettings

CURRENT_CONFIG_VERSION = "1"
MIN_SUPPORTED_VERSION = "1"


class DispatchConfig(BaseModel):
    """Write dispatcher tuning."""

    model_config = ConfigDict(extra="forbid")

    workers: int = Field(default=4, description="Concurrent store writers", ge=1, le=64)
    checkpoint_interval: int = Field(
        default=2000, description="Entities between checkpoints", ge=1
    )
    heartbeat_interval: int = Field(
        default=100, description="Events between scheduler heartbeats", ge=1
    )


class SourceConfig(BaseModel):
    """Where exported files are read from."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["local", "s3"] = "local"
    root: Optional[Path] = Field(default=None, description="Directory holding exports (local)")
    bucket: Optional[str] = Field(default=None, description="Bucket holding exports (s3)")
    download_dir: Path = Field(
        default=Path("data/downloads"), description="Where s3 objects are copied to"
    )

    @model_validator(mode="after")
    def validate_location(self) -> SourceConfig:
        if self.kind == "local" and self.root is None:
            raise ValueError("source.root is required for a local source")
        if self.kind == "s3" and not self.bucket:
            raise ValueError("source.bucket is required for an s3 source")
        return self


class ApplicationEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organization: str
    name: str


class DirectoryConfig(BaseModel):
    """Known organizations (id to name) and applications (id to entry)."""

    model_config = ConfigDict(extra="forbid")

    organizations: Dict[str, str] = Field(default_factory=dict)
    applications: Dict[str, ApplicationEntry] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_references(self) -> DirectoryConfig:
        for application_id, entry in self.applications.items():
            if entry.organization not in self.organizations:
                raise ValueError(
                    f"application {application_id} references unknown organization "
                    f"{entry.organization}"
                )
        return self


class ImportSettings(BaseModel):
    """Top-level settings of the import engine."""

    model_config = ConfigDict(extra="forbid")

    config_version: str = Field(
        default=CURRENT_CONFIG_VERSION, description="Configuration schema version"
    )
    database: Path = Field(default=Path("data/db/imports.db"), description="SQLite database")
    grace_period_ms: int = Field(
        default=SCHEDULE_GRACE_MS, description="Delay before a scheduled job may run", ge=0
    )
    scheduler_workers: int = Field(default=4, description="Scheduler threads", ge=1, le=64)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    source: SourceConfig
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)

    def to_dispatch_settings(self) -> DispatchSettings:
        return DispatchSettings(
            max_workers=self.dispatch.workers,
            checkpoint_interval=self.dispatch.checkpoint_interval,
            heartbeat_interval=self.dispatch.heartbeat_interval,
        )
