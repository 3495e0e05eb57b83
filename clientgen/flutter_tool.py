"""
flutter_tool.py

Responsibility: the `flutter` commands the generator needs (project
scaffolding and dependency resolution). Manifest editing lives in
`patching.py`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from clientgen.runner import CommandResult, CommandRunner


class FlutterError(RuntimeError):
    pass


class FlutterTool:
    def __init__(self, runner: CommandRunner, executable: str = "flutter") -> None:
        self._runner = runner
        self._exe = executable

    def create_project(
        self,
        *,
        project_name: str,
        org: str,
        platforms: Sequence[str],
        output_dir: str | Path,
        cwd: Path,
    ) -> None:
        result = self._runner.run(
            [
                self._exe,
                "create",
                "--project-name",
                project_name,
                "--org",
                org,
                "--platforms",
                ",".join(platforms),
                str(output_dir),
            ],
            cwd=cwd,
        )
        if not result.ok:
            raise FlutterError(f"flutter create failed:\n{result.output}")

    def pub_get(self, project_dir: Path) -> CommandResult:
        """Return the result rather than raising; callers treat this step as best-effort."""
        return self._runner.run([self._exe, "pub", "get"], cwd=project_dir)
