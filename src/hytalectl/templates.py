"""Jinja2 template rendering with operator overrides."""
from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, StrictUndefined


class TemplateEngine:
    """Render built-in templates, preferring files under an override directory."""

    def __init__(self, environment: Environment) -> None:
        """Wrap a configured Jinja2 *environment*."""
        self.environment = environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Build an engine whose loader consults *override_dir* first."""
        loaders: list[FileSystemLoader | PackageLoader] = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("hytalectl", "resources"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,  # noqa: S701 - renders config files, not HTML
        )
        return cls(environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        template = self.environment.get_template(template_name)
        return template.render(**dict(context))

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination*; return False when the content is unchanged."""
        rendered = self.render_to_string(template_name, context)
        if destination.exists():
            try:
                if destination.read_text(encoding="utf-8") == rendered:
                    return False
            except OSError:
                pass
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = destination.with_name(f".{destination.name}.tmp")
        tmp_path.write_text(rendered, encoding="utf-8")
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, destination)
        return True


__all__ = ["TemplateEngine"]
