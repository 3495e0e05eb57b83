from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import pytest

from clientgen.runner import CommandError, CommandResult

PUBSPEC_TEMPLATE = """\
name: {name}
description: "A new Flutter project."
publish_to: 'none'
version: 1.0.0+1

environment:
  sdk: ^3.5.0

dependencies:
  flutter:
    sdk: flutter

  # The following adds the Cupertino Icons font to your application.
  cupertino_icons: ^1.0.8

dev_dependencies:
  flutter_test:
    sdk: flutter
  flutter_lints: ^4.0.0

flutter:

  # The following line ensures that the Material Icons font is
  # included with your application, so that you can use the icons in
  # the material Icons class.
  uses-material-design: true

  # To add assets to your application, add an assets section, like this:
  # assets:
  #   - images/a_dot_burr.jpeg
"""

INDEX_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
  <base href="$FLUTTER_BASE_HREF">
  <meta charset="UTF-8">
  <meta name="description" content="A new Flutter project.">
  <meta name="apple-mobile-web-app-capable" content="yes">
  <meta name="apple-mobile-web-app-status-bar-style" content="black">
  <meta name="apple-mobile-web-app-title" content="{name}">
  <title>{name}</title>
  <link rel="manifest" href="manifest.json">
</head>
<body>
  <script src="flutter_bootstrap.js" async></script>
</body>
</html>
"""

WEB_APP_ID = "1:1234567890:web:abcdef123456"

Effect = Callable[[list[str], Path], None]


@dataclass
class Response:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Effect | None = None


class FakeRunner:
    """
    Stand-in for CommandRunner. Responses are registered per command prefix;
    a prefix with several responses returns them in order and then repeats
    the last one. Later registrations win over earlier ones.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], Path | None]] = []
        self._handlers: list[tuple[tuple[str, ...], list[Response]]] = []

    def on(self, prefix: tuple[str, ...], *responses: Response) -> None:
        self._handlers.append((prefix, list(responses) or [Response()]))

    def commands(self, *prefix: str) -> list[list[str]]:
        return [cmd for cmd, _cwd in self.calls if tuple(cmd[: len(prefix)]) == prefix]

    def run(self, cmd, *, cwd=None, env=None, check=False) -> CommandResult:
        cmd = list(cmd)
        cwd = Path(cwd) if cwd is not None else None
        self.calls.append((cmd, cwd))

        response = Response()
        for prefix, queue in reversed(self._handlers):
            if tuple(cmd[: len(prefix)]) == prefix:
                response = queue.pop(0) if len(queue) > 1 else queue[0]
                break

        if response.effect is not None:
            response.effect(cmd, cwd or Path.cwd())
        result = CommandResult(args=cmd, returncode=response.returncode, stdout=response.stdout, stderr=response.stderr)
        if check and not result.ok:
            raise CommandError(result)
        return result


def fake_flutter_create(cmd: list[str], cwd: Path) -> None:
    project_dir = cwd / cmd[-1]
    name = cmd[cmd.index("--project-name") + 1]
    platforms = cmd[cmd.index("--platforms") + 1].split(",")
    (project_dir / "lib").mkdir(parents=True)
    (project_dir / "pubspec.yaml").write_text(PUBSPEC_TEMPLATE.format(name=name), encoding="utf-8")
    (project_dir / "lib" / "main.dart").write_text("void main() {}\n", encoding="utf-8")
    for platform in platforms:
        (project_dir / platform).mkdir()
    if "web" in platforms:
        (project_dir / "web" / "index.html").write_text(INDEX_HTML_TEMPLATE.format(name=name), encoding="utf-8")


def fake_flutterfire_configure(cmd: list[str], cwd: Path) -> None:
    project_id = cmd[cmd.index("--project") + 1]
    (cwd / "lib" / "firebase_options.dart").write_text("class DefaultFirebaseOptions {}\n", encoding="utf-8")
    firebase_json = cwd / "firebase.json"
    if firebase_json.exists():
        return
    data = {
        "flutter": {
            "platforms": {
                "android": {"default": {"projectId": project_id, "appId": "1:1234567890:android:aaa"}},
                "dart": {
                    "lib/firebase_options.dart": {
                        "projectId": project_id,
                        "configurations": {"android": "1:1234567890:android:aaa", "web": "1:1234567890:web:other"},
                    }
                },
            }
        }
    }
    firebase_json.write_text(json.dumps(data, indent=2), encoding="utf-8")


def firebase_json(result) -> str:
    return json.dumps({"status": "success", "result": result})


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "core_platform").mkdir()
    return tmp_path


@pytest.fixture
def runner() -> FakeRunner:
    r = FakeRunner()
    r.on(("flutter", "create"), Response(effect=fake_flutter_create))
    r.on(("flutter", "pub", "get"), Response())
    r.on(("firebase", "--version"), Response(stdout="13.20.0"))
    r.on(("flutterfire", "--version"), Response(stdout="1.0.0"))
    r.on(
        ("firebase", "projects:list"),
        Response(stdout=firebase_json([{"projectId": "shared-proj", "displayName": "Shared"}])),
    )
    r.on(("firebase", "projects:create"), Response())
    r.on(
        ("firebase", "apps:create"),
        Response(stdout=firebase_json({"appId": WEB_APP_ID, "displayName": "Acme App"})),
    )
    r.on(("firebase", "hosting:sites:create"), Response())
    r.on(("flutterfire", "configure"), Response(effect=fake_flutterfire_configure))
    return r


class Answers:
    def __init__(self, *answers: bool) -> None:
        self._answers = list(answers)
        self.questions: list[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self._answers.pop(0)


@pytest.fixture(autouse=True)
def _reset_clientgen_logger():
    yield
    logger = logging.getLogger("clientgen")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
