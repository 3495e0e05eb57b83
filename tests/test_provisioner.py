import json
from pathlib import Path

import pytest
import yaml

from clientgen.options import GeneratorSettings, build_options
from clientgen.provisioner import ClientProvisioner, FirebaseMode, ProvisionError, ProvisionReport
from clientgen.steps import StepStatus
from conftest import WEB_APP_ID, Answers, FakeRunner, Response

ACCOUNT = "ops@example.com"
NOW = 1760000042.0
GENERATED_ID = "restaurant-acme-042000"


def _provisioner(workspace: Path, runner: FakeRunner, prompt=None, sleeps=None, **option_overrides) -> ClientProvisioner:
    kwargs = dict(client_id="acme", app_name="Acme App", project_name="restaurant", firebase_account=ACCOUNT)
    kwargs.update(option_overrides)
    sleeps = [] if sleeps is None else sleeps
    return ClientProvisioner(
        build_options(**kwargs),
        GeneratorSettings(),
        root=workspace,
        runner=runner,
        prompt=prompt or Answers(True),
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


def test_skip_firebase_end_to_end(workspace: Path, runner: FakeRunner) -> None:
    report = _provisioner(workspace, runner, skip_firebase=True, firebase_account=None).run()

    client = workspace / "clients" / "acme"
    assert report.exit_code == 0
    assert report.firebase_mode is FirebaseMode.SKIPPED
    assert sorted(p.name for p in (client / "lib").iterdir()) == [
        "client_asset_scheme.dart",
        "client_color_scheme.dart",
        "client_config.dart",
        "main.dart",
    ]
    assert (client / "assets" / "images" / "README.md").is_file()
    assert "PLACEHOLDER_PROJECT_ID" in (client / "lib" / "client_config.dart").read_text(encoding="utf-8")
    assert not (client / "firebase.json").exists()
    assert not (client / ".firebaserc").exists()

    assert runner.commands("firebase") == []
    assert runner.commands("flutterfire") == []
    create = runner.commands("flutter", "create")[0]
    assert create[create.index("--platforms") + 1] == "android,ios"
    assert create[create.index("--project-name") + 1] == "restaurant_acme"
    assert create[-1] == "clients/acme"

    assert report.steps.status("firebase_project") is StepStatus.SKIPPED
    assert report.steps.status("flutterfire_configure") is StepStatus.SKIPPED
    assert report.steps.status("source_files") is StepStatus.SUCCEEDED
    assert report.steps.status("web_title") is StepStatus.SKIPPED


def test_dependencies_written_to_pubspec(workspace: Path, runner: FakeRunner) -> None:
    _provisioner(workspace, runner, skip_firebase=True).run()
    pubspec = yaml.safe_load((workspace / "clients" / "acme" / "pubspec.yaml").read_text(encoding="utf-8"))
    assert pubspec["dependencies"]["core_platform"] == {"path": "../../core_platform"}
    assert set(GeneratorSettings().dependencies) <= set(pubspec["dependencies"])
    assert runner.commands("flutter", "pub", "get")


def test_pub_get_failure_only_warns(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("flutter", "pub", "get"), Response(returncode=1, stderr="version solving failed"))
    report = _provisioner(workspace, runner, skip_firebase=True).run()
    assert report.exit_code == 0
    assert any("flutter pub get failed" in w for w in report.warnings)
    assert (workspace / "clients" / "acme" / "lib" / "client_config.dart").exists()


def test_create_new_firebase_project(workspace: Path, runner: FakeRunner) -> None:
    sleeps: list[float] = []
    report = _provisioner(workspace, runner, sleeps=sleeps).run()

    client = workspace / "clients" / "acme"
    assert report.firebase_mode is FirebaseMode.CREATE
    assert report.firebase_project_id == GENERATED_ID
    create = runner.commands("firebase", "projects:create")[0]
    assert create[2] == GENERATED_ID
    assert create[create.index("--display-name") + 1] == "Acme App"
    assert sleeps == [10.0]

    config = (client / "lib" / "client_config.dart").read_text(encoding="utf-8")
    assert "DefaultFirebaseOptions.currentPlatform" in config
    assert (client / "lib" / "firebase_options.dart").exists()
    assert json.loads((client / ".firebaserc").read_text(encoding="utf-8")) == {"projects": {"default": GENERATED_ID}}
    assert runner.commands("firebase", "apps:create") == []
    assert report.steps.status("hosting_config") is StepStatus.SKIPPED


def test_web_with_shared_project(workspace: Path, runner: FakeRunner) -> None:
    report = _provisioner(workspace, runner, web=True, firebase_project="shared-proj").run()

    client = workspace / "clients" / "acme"
    assert report.firebase_mode is FirebaseMode.SHARED
    assert report.hosting_site_id == "shared-proj-acme"
    assert report.web_app_id == WEB_APP_ID
    assert runner.commands("firebase", "projects:create") == []

    site = runner.commands("firebase", "hosting:sites:create")[0]
    assert site[2] == "shared-proj-acme"
    assert site[site.index("--app") + 1] == WEB_APP_ID

    firebaserc = json.loads((client / ".firebaserc").read_text(encoding="utf-8"))
    assert firebaserc["projects"]["default"] == "shared-proj"

    firebase_json = json.loads((client / "firebase.json").read_text(encoding="utf-8"))
    assert firebase_json["hosting"]["site"] == "shared-proj-acme"
    dart = firebase_json["flutter"]["platforms"]["dart"]["lib/firebase_options.dart"]
    assert dart["configurations"]["web"] == WEB_APP_ID

    # Once to generate, once more after retargeting the web app.
    assert len(runner.commands("flutterfire", "configure")) == 2
    create = runner.commands("flutter", "create")[0]
    assert create[create.index("--platforms") + 1] == "android,ios,web"

    index = (client / "web" / "index.html").read_text(encoding="utf-8")
    assert "<title>Acme App</title>" in index
    assert 'content="Acme App"' in index


def test_declined_confirmation_creates_nothing(workspace: Path, runner: FakeRunner) -> None:
    report = _provisioner(workspace, runner, prompt=Answers(False)).run()
    assert report.exit_code == 0
    assert not (workspace / "clients").exists()
    assert runner.calls == []
    assert report.steps.status("confirm") is StepStatus.FAILED


def test_existing_client_dir_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    (workspace / "clients" / "acme").mkdir(parents=True)
    with pytest.raises(ProvisionError, match="already exists"):
        _provisioner(workspace, runner).run()
    assert runner.calls == []


def test_missing_core_platform_is_fatal(tmp_path: Path, runner: FakeRunner) -> None:
    with pytest.raises(ProvisionError, match="core_platform/ not found"):
        _provisioner(tmp_path, runner).run()
    assert runner.calls == []


def test_missing_firebase_cli_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("firebase", "--version"), Response(returncode=127))
    with pytest.raises(ProvisionError, match="Firebase CLI not found"):
        _provisioner(workspace, runner).run()
    assert runner.commands("flutter", "create") == []


def test_flutterfire_is_installed_when_missing(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("flutterfire", "--version"), Response(returncode=127), Response())
    _provisioner(workspace, runner).run()
    assert runner.commands("dart", "pub", "global", "activate", "flutterfire_cli")


def test_flutterfire_install_failure_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("flutterfire", "--version"), Response(returncode=127))
    runner.on(("dart", "pub", "global", "activate"), Response(returncode=1, stderr="pub not found"))
    with pytest.raises(ProvisionError, match="flutterfire_cli"):
        _provisioner(workspace, runner).run()


def test_account_that_cannot_list_projects_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("firebase", "projects:list"), Response(returncode=1, stderr="No authorized accounts"))
    with pytest.raises(ProvisionError, match="No authorized accounts"):
        _provisioner(workspace, runner).run()


def test_unknown_shared_project_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    with pytest.raises(ProvisionError, match="not found"):
        _provisioner(workspace, runner, firebase_project="someone-elses").run()
    assert runner.commands("flutter", "create") == []


def test_project_creation_failure_declined(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("firebase", "projects:create"), Response(returncode=1, stderr="quota exceeded"))
    answers = Answers(True, False)
    with pytest.raises(ProvisionError, match="creation failed"):
        _provisioner(workspace, runner, prompt=answers).run()
    assert len(answers.questions) == 2
    assert runner.commands("flutter", "create") == []


def test_project_creation_failure_accepted_uses_placeholders(
    workspace: Path, runner: FakeRunner, capsys: pytest.CaptureFixture[str]
) -> None:
    runner.on(("firebase", "projects:create"), Response(returncode=1, stderr="quota exceeded"))
    report = _provisioner(workspace, runner, prompt=Answers(True, True)).run()

    assert report.exit_code == 0
    assert report.firebase_mode is FirebaseMode.DEGRADED
    config = (workspace / "clients" / "acme" / "lib" / "client_config.dart").read_text(encoding="utf-8")
    assert "PLACEHOLDER_API_KEY" in config
    assert runner.commands("flutterfire", "configure") == []
    assert "quota exceeded" in capsys.readouterr().out


def test_configure_failure_falls_back_to_placeholders(
    workspace: Path, runner: FakeRunner, capsys: pytest.CaptureFixture[str]
) -> None:
    runner.on(("flutterfire", "configure"), Response(returncode=1, stderr="Firebase project not found"))
    sleeps: list[float] = []
    report = _provisioner(workspace, runner, sleeps=sleeps).run()

    assert report.exit_code == 0
    assert report.firebase_mode is FirebaseMode.DEGRADED
    assert len(runner.commands("flutterfire", "configure")) == 3
    assert sleeps == [10.0, 5.0, 10.0]
    assert report.steps.status("flutterfire_configure") is StepStatus.FAILED
    assert report.steps.status("firebaserc") is StepStatus.SKIPPED

    config = (workspace / "clients" / "acme" / "lib" / "client_config.dart").read_text(encoding="utf-8")
    assert "PLACEHOLDER_PROJECT_ID" in config
    out = capsys.readouterr().out
    assert f"flutterfire configure --project {GENERATED_ID}" in out


def test_flutter_create_failure_is_fatal(workspace: Path, runner: FakeRunner) -> None:
    runner.on(("flutter", "create"), Response(returncode=1, stderr="Flutter SDK not found"))
    with pytest.raises(ProvisionError, match="Flutter SDK not found"):
        _provisioner(workspace, runner, skip_firebase=True).run()


def test_configure_firebase_without_project_id_raises(workspace: Path, runner: FakeRunner) -> None:
    provisioner = _provisioner(workspace, runner)
    report = ProvisionReport(exit_code=0, client_dir=workspace / "clients" / "acme", firebase_mode=FirebaseMode.CREATE)

    with pytest.raises(ProvisionError, match="No Firebase project"):
        provisioner._configure_firebase(report)
    assert runner.calls == []
