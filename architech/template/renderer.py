"""Jinja2 rendering for file templates.

``create-file`` actions may name a template file instead of carrying inline
content.  ``TemplateRenderer`` loads those files from the configured template
directory and renders them with the execution context.  The result is then
staged like any other content; nothing is written to disk here.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    Undefined,
    select_autoescape,
)

from architech.errors import NotFoundError


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 file templates with blueprint execution context.

    Template names are paths relative to the template directory; a ``.j2``
    suffix is optional when looking a template up.
    """

    def __init__(self, template_dir: str | Path, *, strict: bool = False) -> None:
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined if strict else Undefined,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter
        self.env.filters["kebab_case"] = _kebab_case_filter

    # -- Rendering ---------------------------------------------------------

    def render(self, template_path: str, context: Mapping[str, Any]) -> str:
        """Render a single template file.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"nextjs/app/layout.tsx.j2"`` or ``"nextjs/app/layout.tsx"``).
            context: Variables available inside the template.

        Raises:
            NotFoundError: If neither the name nor its ``.j2`` variant exists.
        """
        template = None
        for candidate in _candidates(template_path):
            try:
                template = self.env.get_template(candidate)
                break
            except TemplateNotFound:
                continue
        if template is None:
            raise NotFoundError(
                f"Template not found: {template_path} (searched {self.template_dir})",
                path=template_path,
            )
        return template.render(**dict(context))

    def render_string(self, template_string: str, context: Mapping[str, Any]) -> str:
        """Render an inline Jinja2 template string."""
        template = self.env.from_string(template_string)
        return template.render(**dict(context))

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*.

        Paths are relative to the template root directory.
        """
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*.j2")
        )


def _candidates(template_path: str) -> list[str]:
    name = template_path.replace("\\", "/").lstrip("/")
    if name.endswith(".j2"):
        return [name]
    return [name, f"{name}.j2"]


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def _kebab_case_filter(value: str) -> str:
    return _snake_case_filter(value).replace("_", "-")
