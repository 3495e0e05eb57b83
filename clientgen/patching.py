"""
patching.py

Responsibility: in-place edits of files produced by external tools.

- `pubspec.yaml` written by `flutter create` (text edits on known anchors, so
  comments and formatting survive)
- `firebase.json` written by `flutterfire configure` (JSON edits)
- `.firebaserc` (JSON)
- `web/index.html` (regex substitution)

This module intentionally does NOT run any commands.
"""

from __future__ import annotations

import html
import json
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

PUBSPEC = "pubspec.yaml"
FIREBASE_JSON = "firebase.json"
FIREBASERC = ".firebaserc"
WEB_INDEX = "web/index.html"

_DEPENDENCIES_ANCHOR = re.compile(r"^dependencies:\n  flutter:\n    sdk: flutter\n", re.MULTILINE)
_MATERIAL_ANCHOR = re.compile(r"^  uses-material-design: true\n?", re.MULTILINE)
_ASSETS_SECTION = re.compile(r"^  assets:", re.MULTILINE)
_TITLE_RE = re.compile(r"<title>.*?</title>", re.DOTALL)
_APPLE_TITLE_RE = re.compile(r'(<meta\s+name="apple-mobile-web-app-title"\s+content=")[^"]*(")')

HOSTING_IGNORE = ["firebase.json", "**/.*", "**/node_modules/**"]


class PatchError(RuntimeError):
    pass


def _dependency_block(dependencies: Mapping[str, str], core_platform_path: str, existing: str) -> str:
    lines = []
    if not re.search(r"^  core_platform:", existing, re.MULTILINE):
        lines.append(f"  core_platform:\n    path: {core_platform_path}\n")
    for name, constraint in dependencies.items():
        if re.search(rf"^  {re.escape(name)}:", existing, re.MULTILINE):
            continue
        lines.append(f"  {name}: {constraint}\n")
    return "".join(lines)


def add_pubspec_dependencies(
    project_dir: Path,
    *,
    dependencies: Mapping[str, str],
    core_platform_path: str = "../../core_platform",
    assets_dir: str = "assets/images/",
) -> list[str]:
    """
    Add the dependency list, the local `core_platform` path dependency and an
    assets section to the generated `pubspec.yaml`.

    Raises PatchError when the manifest does not exist. Anchors that cannot
    be found are returned as warnings instead.
    """
    path = project_dir / PUBSPEC
    if not path.exists():
        raise PatchError(f"{PUBSPEC} not found in {project_dir}")

    text = path.read_text(encoding="utf-8")
    warnings: list[str] = []

    block = _dependency_block(dependencies, core_platform_path, text)
    if block:
        match = _DEPENDENCIES_ANCHOR.search(text)
        if match is None:
            warnings.append(f"Could not find the `dependencies:` section in {PUBSPEC}; add core_platform manually")
        else:
            text = text[: match.end()] + block + text[match.end() :]

    if not _ASSETS_SECTION.search(text):
        match = _MATERIAL_ANCHOR.search(text)
        if match is None:
            warnings.append(f"Could not find `uses-material-design: true` in {PUBSPEC}; add the assets section manually")
        else:
            head = text[: match.end()]
            if not head.endswith("\n"):
                head += "\n"
            text = head + f"  assets:\n    - {assets_dir}\n" + text[match.end() :]

    path.write_text(text, encoding="utf-8", newline="\n")

    try:
        yaml.safe_load(text)
    except yaml.YAMLError as e:
        warnings.append(f"{PUBSPEC} is no longer valid YAML after patching: {e}")
    return warnings


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError as e:
        raise PatchError(f"{path.name} is not valid JSON") from e
    if not isinstance(data, dict):
        raise PatchError(f"{path.name} must contain a JSON object")
    return data


def _write_json(path: Path, data: Mapping[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8", newline="\n")


def set_web_app_id(project_dir: Path, app_id: str) -> None:
    """
    Point every Dart output recorded in flutterfire's `firebase.json` at the
    given web app id, so the next `flutterfire configure` uses it.
    """
    path = project_dir / FIREBASE_JSON
    if not path.exists():
        raise PatchError(f"{FIREBASE_JSON} not found in {project_dir}; was flutterfire configure run?")
    data = _load_json(path)

    outputs = data.get("flutter", {}).get("platforms", {}).get("dart", {})
    if not isinstance(outputs, dict) or not outputs:
        raise PatchError(f"{FIREBASE_JSON} has no flutter.platforms.dart entries")
    for output in outputs.values():
        if isinstance(output, dict):
            configurations = output.setdefault("configurations", {})
            configurations["web"] = app_id
    _write_json(path, data)


def merge_hosting_config(project_dir: Path, *, site_id: str, public_dir: str = "build/web") -> None:
    """Add or update the `hosting` block, keeping everything else in `firebase.json`."""
    path = project_dir / FIREBASE_JSON
    data = _load_json(path)
    hosting = data.get("hosting")
    hosting = dict(hosting) if isinstance(hosting, dict) else {}
    hosting.update(
        {
            "site": site_id,
            "public": public_dir,
            "ignore": list(HOSTING_IGNORE),
            "rewrites": [{"source": "**", "destination": "/index.html"}],
        }
    )
    data["hosting"] = hosting
    _write_json(path, data)


def write_firebaserc(project_dir: Path, project_id: str) -> None:
    path = project_dir / FIREBASERC
    data = _load_json(path)
    projects = data.get("projects")
    projects = dict(projects) if isinstance(projects, dict) else {}
    projects["default"] = project_id
    data["projects"] = projects
    _write_json(path, data)


def set_web_title(project_dir: Path, app_name: str) -> list[str]:
    """
    Rewrite the `<title>` and `apple-mobile-web-app-title` of `web/index.html`.

    Returns warnings for anything that could not be patched.
    """
    path = project_dir / WEB_INDEX
    if not path.exists():
        return [f"{WEB_INDEX} not found; set the page title manually"]

    text = path.read_text(encoding="utf-8")
    escaped = html.escape(app_name, quote=True)
    warnings: list[str] = []

    text, n = _TITLE_RE.subn(lambda _m: f"<title>{escaped}</title>", text, count=1)
    if not n:
        warnings.append(f"No <title> tag in {WEB_INDEX}")
    text, n = _APPLE_TITLE_RE.subn(lambda m: f"{m.group(1)}{escaped}{m.group(2)}", text, count=1)
    if not n:
        warnings.append(f"No apple-mobile-web-app-title meta tag in {WEB_INDEX}")

    path.write_text(text, encoding="utf-8")
    return warnings
