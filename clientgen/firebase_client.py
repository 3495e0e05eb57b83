"""
firebase_client.py

Responsibility: isolate all interaction with the `firebase` and `flutterfire`
command-line tools.

This module must be the only place that:
- Builds `firebase` / `flutterfire` command lines
- Parses their JSON output
- Interprets their error output (including the "project not visible yet"
  signature that makes `flutterfire configure` worth retrying)

Everything else (scaffolding, file patching, CLI behavior) should use these clients.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from clientgen.runner import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# Substrings (lowercased) flutterfire prints while a freshly created project
# has not propagated yet.
PROJECT_NOT_FOUND_SIGNATURES = (
    "project not found",
    "not_found",
    "could not find project",
    "does not exist or you do not have permission",
)

FIREBASE_OPTIONS_OUT = "lib/firebase_options.dart"


class FirebaseError(RuntimeError):
    pass


class ProjectNotVisibleError(FirebaseError):
    pass


@dataclass(frozen=True)
class WebAppInfo:
    app_id: str
    display_name: str


def _parse_json_result(result: CommandResult, what: str) -> Any:
    """`firebase --json` prints {"status": "success", "result": ...}."""
    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise FirebaseError(f"Unexpected output from `firebase` while {what}:\n{result.output}") from e
    if not isinstance(payload, dict) or payload.get("status") != "success":
        message = payload.get("error", payload) if isinstance(payload, dict) else payload
        raise FirebaseError(f"Firebase CLI error while {what}: {message}")
    return payload.get("result")


def is_project_not_found(output: str) -> bool:
    text = output.lower()
    return any(sig in text for sig in PROJECT_NOT_FOUND_SIGNATURES)


class FirebaseClient:
    def __init__(self, runner: CommandRunner, account: str | None = None, executable: str = "firebase") -> None:
        self._runner = runner
        self._account = account
        self._exe = executable

    def _cmd(self, *args: str) -> list[str]:
        cmd = [self._exe, *args]
        if self._account:
            cmd += ["--account", self._account]
        return cmd

    def is_installed(self) -> bool:
        return self._runner.run([self._exe, "--version"]).ok

    def list_projects(self) -> list[str]:
        """
        Return the project ids visible to the account.

        Raises FirebaseError when the account cannot list projects (not
        logged in, wrong account, no network).
        """
        result = self._runner.run(self._cmd("projects:list", "--json"))
        if not result.ok:
            raise FirebaseError(f"Cannot list Firebase projects for {self._account or 'the active account'}:\n{result.output}")
        projects = _parse_json_result(result, "listing projects") or []
        return [str(p.get("projectId")) for p in projects if isinstance(p, dict) and p.get("projectId")]

    def create_project(self, project_id: str, display_name: str) -> None:
        result = self._runner.run(
            self._cmd("projects:create", project_id, "--display-name", display_name, "--non-interactive")
        )
        if not result.ok:
            raise FirebaseError(f"Failed to create Firebase project {project_id}:\n{result.output}")

    def create_web_app(self, project_id: str, display_name: str) -> WebAppInfo:
        result = self._runner.run(self._cmd("apps:create", "WEB", display_name, "--project", project_id, "--json"))
        if not result.ok:
            raise FirebaseError(f"Failed to create web app in {project_id}:\n{result.output}")
        data = _parse_json_result(result, "creating the web app") or {}
        if not isinstance(data, dict):
            raise FirebaseError(f"Unexpected result from firebase while creating the web app: {data!r}")
        app_id = str(data.get("appId") or "")
        if not app_id:
            raise FirebaseError(f"Firebase did not return an app id for web app {display_name!r}")
        return WebAppInfo(app_id=app_id, display_name=str(data.get("displayName") or display_name))

    def create_hosting_site(self, project_id: str, site_id: str, app_id: str) -> None:
        result = self._runner.run(
            self._cmd("hosting:sites:create", site_id, "--project", project_id, "--app", app_id, "--non-interactive")
        )
        if not result.ok:
            raise FirebaseError(f"Failed to create hosting site {site_id}:\n{result.output}")


class FlutterFireClient:
    def __init__(
        self,
        runner: CommandRunner,
        account: str | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        executable: str = "flutterfire",
    ) -> None:
        self._runner = runner
        self._account = account
        self._sleep = sleep
        self._exe = executable

    def is_callable(self) -> bool:
        return self._runner.run([self._exe, "--version"]).ok

    def install(self) -> None:
        result = self._runner.run(["dart", "pub", "global", "activate", "flutterfire_cli"])
        if not result.ok:
            raise FirebaseError(f"Failed to install flutterfire_cli:\n{result.output}")

    def configure(
        self,
        *,
        project_id: str,
        platforms: Sequence[str],
        cwd: Path,
        max_attempts: int = 3,
        backoff_seconds: float = 5.0,
    ) -> None:
        """
        Run `flutterfire configure` non-interactively, overwriting existing output.

        Retries only while the output says the project is not found yet,
        waiting `attempt * backoff_seconds` between attempts. Any other
        failure raises immediately.
        """
        cmd = [
            self._exe,
            "configure",
            "--project",
            project_id,
            "--platforms",
            ",".join(platforms),
            "--out",
            FIREBASE_OPTIONS_OUT,
            "--yes",
            "--overwrite-firebase-options",
        ]
        if self._account:
            cmd += ["--account", self._account]

        for attempt in range(1, max_attempts + 1):
            result = self._runner.run(cmd, cwd=cwd)
            if result.ok:
                return
            if not is_project_not_found(result.output):
                raise FirebaseError(f"flutterfire configure failed:\n{result.output}")
            if attempt == max_attempts:
                break
            delay = attempt * backoff_seconds
            logger.warning(
                "Project %s not visible yet (attempt %s/%s), retrying in %ss", project_id, attempt, max_attempts, delay
            )
            self._sleep(delay)

        raise ProjectNotVisibleError(
            f"Project {project_id} still not visible to flutterfire after {max_attempts} attempts"
        )
