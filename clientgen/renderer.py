"""
renderer.py

Responsibility: Deterministically render/copy the bundled client template into
a generated Flutter project.

Rules:
- Walk template files in sorted order to ensure deterministic output.
- For UTF-8 text files, if Jinja2 markers are present, render with the provided context.
- Everything else is copied byte-for-byte.

This module intentionally does NOT know about Firebase, flutter, or CLI parsing.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from clientgen.options import ClientOptions, GeneratorSettings

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
CLIENT_TEMPLATE = "client"


class RenderError(RuntimeError):
    pass


@dataclass(frozen=True)
class RenderResult:
    rendered_files: int
    copied_files: int
    paths: tuple[str, ...] = ()


def _is_binary_file(path: Path) -> bool:
    """
    Best-effort: treat a file as binary if it cannot be decoded as UTF-8.
    """
    try:
        path.read_text(encoding="utf-8")
        return False
    except UnicodeDecodeError:
        return True


def _iter_template_files(template_dir: Path) -> list[Path]:
    files: list[Path] = []
    for root, _dirs, filenames in os.walk(template_dir):
        root_path = Path(root)
        for name in filenames:
            files.append(root_path / name)
    files.sort(key=lambda p: str(p.relative_to(template_dir)).replace(os.sep, "/"))
    return files


def _dart_string(value: str) -> str:
    """Escape a value for use inside a single-quoted Dart string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'").replace("$", "\\$")


def build_context(
    options: ClientOptions,
    settings: GeneratorSettings,
    *,
    firebase_configured: bool,
    firebase_project_id: str | None = None,
) -> dict[str, Any]:
    # Deterministic keys; templates should reference these.
    return {
        "client_id": options.client_id,
        "app_name": options.app_name,
        "project_name": options.project_name,
        "package_name": options.package_name,
        "api_base_url": options.api_base_url(settings),
        "config_class": options.class_name("config"),
        "color_scheme_class": options.class_name("color_scheme"),
        "asset_scheme_class": options.class_name("asset_scheme"),
        "firebase_configured": firebase_configured,
        "firebase_project_id": firebase_project_id or "",
    }


def render_template_dir(
    *,
    template_dir: str | Path,
    destination_dir: str | Path,
    context: dict[str, Any],
) -> RenderResult:
    """
    Render/copy a template directory into destination_dir, overwriting files
    that already exist there (e.g. the stock `lib/main.dart`).
    """
    tpl_dir = Path(template_dir).resolve()
    dst_dir = Path(destination_dir).resolve()

    if not tpl_dir.exists() or not tpl_dir.is_dir():
        raise RenderError(f"Template directory not found: {tpl_dir}")

    env = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    env.filters["dart_string"] = _dart_string

    rendered = 0
    copied = 0
    paths: list[str] = []

    for src_path in _iter_template_files(tpl_dir):
        rel = src_path.relative_to(tpl_dir)
        dst_path = dst_dir / rel
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        paths.append(str(rel).replace(os.sep, "/"))

        if _is_binary_file(src_path):
            shutil.copy2(src_path, dst_path)
            copied += 1
            continue

        text = src_path.read_text(encoding="utf-8")
        if ("{{" in text) or ("{%" in text) or ("{#" in text):
            try:
                out = env.from_string(text).render(**context)
            except TemplateError as e:
                raise RenderError(f"Failed rendering template file: {rel}") from e
            dst_path.write_text(out, encoding="utf-8", newline="\n")
            rendered += 1
        else:
            shutil.copy2(src_path, dst_path)
            copied += 1

    return RenderResult(rendered_files=rendered, copied_files=copied, paths=tuple(paths))


def render_client_sources(destination_dir: Path, context: dict[str, Any], templates_dir: Path | None = None) -> RenderResult:
    return render_template_dir(
        template_dir=(templates_dir or TEMPLATES_DIR) / CLIENT_TEMPLATE,
        destination_dir=destination_dir,
        context=context,
    )
