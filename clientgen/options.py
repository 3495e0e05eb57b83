"""
options.py

Responsibility: turn raw CLI input and the optional YAML settings file into
validated, typed models.

Everything downstream (provisioner, renderer, tool adapters) treats
`ClientOptions` and `GeneratorSettings` as the single source of truth and
never re-validates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

CLIENT_ID_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
PROJECT_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Firebase project ids: 6-30 chars, lowercase letters, digits and hyphens.
FIREBASE_PROJECT_ID_MAX = 30
_PROJECT_ID_SUFFIX_DIGITS = 6

DEFAULT_SETTINGS_FILE = "clientgen.yaml"


class ValidationError(ValueError):
    pass


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class GeneratorSettings:
    """Paths, dependency list and timing knobs for a generator run."""

    clients_dir: str = "clients"
    core_platform_dir: str = "core_platform"
    platforms: tuple[str, ...] = ("android", "ios")
    dependencies: dict[str, str] = field(
        default_factory=lambda: {
            "flutter_bloc": "^8.1.6",
            "equatable": "^2.0.5",
            "firebase_core": "^3.6.0",
        }
    )
    api_base_url: str = "https://api.example.com"
    propagation_delay_seconds: float = 10.0
    configure_max_attempts: int = 3
    configure_backoff_seconds: float = 5.0
    hosting_public_dir: str = "build/web"


@dataclass(frozen=True)
class ClientOptions:
    """Validated generator input plus the names derived from it."""

    client_id: str
    app_name: str
    project_name: str
    org: str = "com.example"
    firebase_account: str | None = None
    firebase_project: str | None = None
    web: bool = False
    skip_firebase: bool = False

    @property
    def client_key(self) -> str:
        """Lowercased client id, used wherever the target forbids uppercase."""
        return self.client_id.lower()

    @property
    def package_name(self) -> str:
        return f"{self.org}.{self.project_name}.{self.client_key}"

    @property
    def flutter_project_name(self) -> str:
        return f"{self.project_name}_{self.client_key}"

    @property
    def shared_firebase(self) -> bool:
        return self.firebase_project is not None

    def platforms(self, settings: GeneratorSettings) -> list[str]:
        out = list(settings.platforms)
        if self.web and "web" not in out:
            out.append("web")
        return out

    def api_base_url(self, settings: GeneratorSettings) -> str:
        return f"{settings.api_base_url.rstrip('/')}/{self.project_name}"

    def class_name(self, suffix: str) -> str:
        return to_pascal_case(f"{self.client_id}_{suffix}")


def to_pascal_case(text: str) -> str:
    return "".join(word[0].upper() + word[1:].lower() for word in text.split("_") if word)


def build_options(
    *,
    client_id: str | None,
    app_name: str | None,
    project_name: str | None,
    org: str | None = None,
    firebase_account: str | None = None,
    firebase_project: str | None = None,
    web: bool = False,
    skip_firebase: bool = False,
) -> ClientOptions:
    """
    Validate raw input and build `ClientOptions`.

    Raises `ValidationError` with an operator-facing one-line message.
    """
    client_id = (client_id or "").strip()
    app_name = (app_name or "").strip()
    project_name = (project_name or "").strip()
    org = (org or "").strip() or "com.example"

    if not client_id:
        raise ValidationError("--client-id is required")
    if not app_name:
        raise ValidationError("--app-name is required")
    if not project_name:
        raise ValidationError("--project-name is required")

    if not CLIENT_ID_RE.match(client_id):
        raise ValidationError("client-id must start with a letter and contain only letters, numbers, and underscores")
    if not PROJECT_NAME_RE.match(project_name):
        raise ValidationError("project-name must be lowercase letters, numbers, and underscores only")

    account = (firebase_account or "").strip() or None
    existing = (firebase_project or "").strip() or None
    if not skip_firebase:
        if account is None:
            raise ValidationError("--firebase-account is required unless --skip-firebase is set")
        if not EMAIL_RE.match(account):
            raise ValidationError(f"--firebase-account must be an email address, got: {account}")

    return ClientOptions(
        client_id=client_id,
        app_name=app_name,
        project_name=project_name,
        org=org,
        firebase_account=account,
        firebase_project=existing,
        web=bool(web),
        skip_firebase=bool(skip_firebase),
    )


def generate_firebase_project_id(options: ClientOptions, now: float) -> str:
    """
    Derive a unique Firebase project id from grouping name, client id and a
    timestamp suffix, respecting Firebase's 30 character limit.
    """
    base = f"{options.project_name}-{options.client_key}".replace("_", "-")
    base = re.sub(r"[^a-z0-9-]", "", base)
    base = re.sub(r"-+", "-", base)
    limit = FIREBASE_PROJECT_ID_MAX - _PROJECT_ID_SUFFIX_DIGITS - 1
    base = base[:limit].rstrip("-")
    suffix = str(int(now * 1000))[-_PROJECT_ID_SUFFIX_DIGITS:]
    return f"{base}-{suffix}"


def hosting_site_id(firebase_project_id: str, options: ClientOptions) -> str:
    return f"{firebase_project_id}-{options.client_key}"


def _coerce(name: str, value: Any, default: Any) -> Any:
    if isinstance(default, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise SettingsError(f"`{name}` must be a list of strings.")
        return tuple(value)
    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise SettingsError(f"`{name}` must be a mapping.")
        return {str(k): str(v) for k, v in value.items()}
    if isinstance(default, bool) or isinstance(value, bool):
        raise SettingsError(f"`{name}` has an invalid value: {value!r}")
    if isinstance(default, int) and not isinstance(default, bool):
        if not isinstance(value, int):
            raise SettingsError(f"`{name}` must be an integer.")
        return value
    if isinstance(default, float):
        if not isinstance(value, (int, float)):
            raise SettingsError(f"`{name}` must be a number.")
        if value < 0:
            raise SettingsError(f"`{name}` must not be negative.")
        return value
    if not isinstance(value, str) or not value.strip():
        raise SettingsError(f"`{name}` must be a non-empty string.")
    return value.strip()


def load_settings(path: str | Path | None) -> GeneratorSettings:
    """
    Load generator settings from a YAML mapping, falling back to defaults.

    `path=None` returns the defaults. Unknown keys are rejected so typos do
    not silently fall back to defaults.
    """
    settings = GeneratorSettings()
    if path is None:
        return settings

    p = Path(path)
    if not p.exists():
        raise SettingsError(f"Settings file does not exist: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"Settings file is not valid YAML: {p}") from e
    if not isinstance(data, dict):
        raise SettingsError("Settings must be a mapping/object at the top level.")

    known = {f.name: getattr(settings, f.name) for f in fields(settings)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise SettingsError(f"Unknown settings: {', '.join(str(k) for k in unknown)}")

    overrides = {name: _coerce(name, value, known[name]) for name, value in data.items()}
    if overrides.get("configure_max_attempts", 1) < 1:
        raise SettingsError("`configure_max_attempts` must be at least 1.")
    return replace(settings, **overrides)
