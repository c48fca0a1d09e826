"""Generation of the terraform state backend configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .templates import TemplateLoader, render_to_file

BACKEND_TEMPLATE = "backend.tpl"
BACKEND_FILE = "backend.tf"


@dataclass(frozen=True)
class BackendSettings:
    """Location and credentials of the state store and the lock table."""

    minio_url: str = ""
    access_key: str = ""
    secret_key: str = ""
    dynamo_url: str = ""
    dynamo_table: str = ""

    @classmethod
    def from_env(cls) -> "BackendSettings":
        """Read the settings from the environment."""
        return cls(
            minio_url=os.environ.get("MINIO_URL", ""),
            access_key=os.environ.get("MINIO_ACCESS_KEY", ""),
            secret_key=os.environ.get("MINIO_SECRET_KEY", ""),
            dynamo_url=os.environ.get("DYNAMO_URL", ""),
            dynamo_table=os.environ.get("DYNAMO_TABLE", ""),
        )


@dataclass
class Backend:
    """Writes backend.tf for one cluster directory."""

    project_name: str
    cluster_name: str
    directory: str | os.PathLike[str]
    settings: BackendSettings = field(default_factory=BackendSettings.from_env)
    loader: TemplateLoader = field(default_factory=TemplateLoader)

    def create_files(self) -> Path:
        """Render backend.tf into the directory and return its path."""
        template = self.loader.load_template(BACKEND_TEMPLATE)
        data = {
            "project_name": self.project_name,
            "cluster_name": self.cluster_name,
            "minio_url": self.settings.minio_url,
            "access_key": self.settings.access_key,
            "secret_key": self.settings.secret_key,
            "dynamo_url": self.settings.dynamo_url,
            "dynamo_table": self.settings.dynamo_table,
        }
        return render_to_file(template, self.directory, BACKEND_FILE, data)