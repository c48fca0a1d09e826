"""Loading and rendering of templates, and writing of key files."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jinja2

TERRAFORMER_TEMPLATES = Path(
    os.environ.get("TERRAFORMER_TEMPLATES", "templates/terraformer")
)
TESTING_TEMPLATES = Path(os.environ.get("TESTING_TEMPLATES", "templates/testing"))


class TemplateLoader:
    """Loads templates by name from one directory."""

    def __init__(self, directory: str | os.PathLike[str] = TERRAFORMER_TEMPLATES):
        self.directory = Path(directory)
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.directory)),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def load_template(self, name: str) -> jinja2.Template:
        """Return the parsed template; raise TemplateNotFound if it is missing."""
        return self._env.get_template(name)


def _context(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return dict(data)
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return {f.name: getattr(data, f.name) for f in dataclasses.fields(data)}
    return dict(vars(data))


def render_to_string(template: jinja2.Template, data: Any) -> str:
    """Render a template with the fields of ``data`` as variables."""
    return template.render(_context(data))


def render_to_file(
    template: jinja2.Template,
    directory: str | os.PathLike[str],
    filename: str,
    data: Any,
) -> Path:
    """Render a template into ``directory/filename``, creating the directory."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / filename
    target.write_text(render_to_string(template, data), encoding="utf-8")
    return target


def write_key_file(content: str, directory: str | os.PathLike[str], name: str) -> Path:
    """Write a key or credential file readable only by its owner."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / name
    target.write_text(content, encoding="utf-8")
    target.chmod(0o600)
    return target