"""
provisioner.py

Responsibility: orchestrate client generation end to end.

High-level flow:
1) Summarize the request and ask for confirmation
2) Check the output directory and `core_platform/`
3) (Optional) Check Firebase tooling/account, create or look up the project
4) `flutter create` the client, add dependencies
5) (Optional) Register web app + hosting site, run `flutterfire configure`,
   write hosting config and `.firebaserc`
6) Render the Dart sources from templates, patch the web page title

Firebase failures after the project exists never abort the run: the client
falls back to placeholder Firebase configuration and the operator gets
manual recovery instructions.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from clientgen.firebase_client import FirebaseClient, FirebaseError, FlutterFireClient
from clientgen.flutter_tool import FlutterError, FlutterTool
from clientgen.options import (
    ClientOptions,
    GeneratorSettings,
    generate_firebase_project_id,
    hosting_site_id,
)
from clientgen.patching import (
    PatchError,
    add_pubspec_dependencies,
    merge_hosting_config,
    set_web_app_id,
    set_web_title,
    write_firebaserc,
)
from clientgen.renderer import build_context, render_client_sources
from clientgen.runner import CommandError, CommandRunner
from clientgen.steps import StepLog, StepStatus

logger = logging.getLogger(__name__)

STEPS = (
    "confirm",
    "check_output_dir",
    "check_core_platform",
    "firebase_tools",
    "firebase_account",
    "firebase_project",
    "flutter_create",
    "dependencies",
    "firebase_propagation",
    "web_app",
    "hosting_site",
    "flutterfire_configure",
    "web_app_target",
    "hosting_config",
    "firebaserc",
    "source_files",
    "web_title",
)
FIREBASE_CONFIG_STEPS = (
    "firebase_propagation",
    "web_app",
    "hosting_site",
    "flutterfire_configure",
    "web_app_target",
    "hosting_config",
    "firebaserc",
)

Prompt = Callable[[str], bool]


class ProvisionError(RuntimeError):
    pass


class FirebaseMode(str, Enum):
    CREATE = "create"
    SHARED = "shared"
    SKIPPED = "skipped"
    DEGRADED = "degraded"


@dataclass
class ProvisionReport:
    exit_code: int
    client_dir: Path
    firebase_mode: FirebaseMode
    firebase_project_id: str | None = None
    web_app_id: str | None = None
    hosting_site_id: str | None = None
    steps: StepLog = field(default_factory=lambda: StepLog(STEPS))
    warnings: list[str] = field(default_factory=list)

    @property
    def firebase_active(self) -> bool:
        return self.firebase_mode in (FirebaseMode.CREATE, FirebaseMode.SHARED)


def confirm(question: str) -> bool:
    """Ask a yes/no question on the terminal. EOF counts as "no"."""
    try:
        answer = input(f"{question} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class ClientProvisioner:
    def __init__(
        self,
        options: ClientOptions,
        settings: GeneratorSettings | None = None,
        *,
        root: str | Path | None = None,
        runner: CommandRunner | None = None,
        prompt: Prompt = confirm,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        templates_dir: Path | None = None,
    ) -> None:
        self.options = options
        self.settings = settings or GeneratorSettings()
        self.root = Path(root or Path.cwd()).resolve()
        self.runner = runner or CommandRunner()
        self._prompt = prompt
        self._sleep = sleep
        self._clock = clock
        self._templates_dir = templates_dir

        self.flutter = FlutterTool(self.runner)
        self.firebase = FirebaseClient(self.runner, options.firebase_account)
        self.flutterfire = FlutterFireClient(self.runner, options.firebase_account, sleep=sleep)

    @property
    def client_rel_dir(self) -> str:
        return f"{self.settings.clients_dir}/{self.options.client_id}"

    @property
    def client_dir(self) -> Path:
        return self.root / self.settings.clients_dir / self.options.client_id

    def _warn(self, report: ProvisionReport, message: str) -> None:
        logger.warning(message)
        report.warnings.append(message)

    def run(self) -> ProvisionReport:
        """
        Run the whole pipeline.

        Returns a report with exit code 0 on success or when the operator
        declines; raises ProvisionError for fatal problems.
        """
        opts = self.options
        mode = (
            FirebaseMode.SKIPPED
            if opts.skip_firebase
            else FirebaseMode.SHARED if opts.shared_firebase else FirebaseMode.CREATE
        )
        report = ProvisionReport(exit_code=0, client_dir=self.client_dir, firebase_mode=mode)
        steps = report.steps

        self._print_request(mode)
        steps.start("confirm")
        if not self._prompt("Create this client?"):
            steps.fail("confirm", "declined")
            steps.skip_remaining("declined")
            print("Aborted. Nothing was created.")
            return report
        steps.succeed("confirm")

        steps.run("check_output_dir", self._check_output_dir)
        steps.run("check_core_platform", self._check_core_platform)

        if mode is FirebaseMode.SKIPPED:
            for name in ("firebase_tools", "firebase_account", "firebase_project"):
                steps.skip(name, "--skip-firebase")
        else:
            steps.run("firebase_tools", self._check_firebase_tools)
            projects = steps.run("firebase_account", self._list_projects)
            report.firebase_project_id = steps.run("firebase_project", self._resolve_project, report, projects)

        steps.run("flutter_create", self._flutter_create)
        steps.run("dependencies", self._add_dependencies, report)

        if report.firebase_active:
            try:
                self._configure_firebase(report)
            except (FirebaseError, CommandError, PatchError, OSError) as e:
                self._print_recovery(report, e)
                report.firebase_mode = FirebaseMode.DEGRADED
        for name in FIREBASE_CONFIG_STEPS:
            if steps.status(name) is StepStatus.PENDING:
                steps.skip(name, f"firebase {report.firebase_mode.value}")

        self._render_sources(report)

        self._patch_web_title(report)
        self._print_summary(report)
        return report

    # Checks

    def _check_output_dir(self) -> None:
        if self.client_dir.exists():
            raise ProvisionError(f"Client {self.options.client_id} already exists in {self.settings.clients_dir}/")

    def _check_core_platform(self) -> None:
        if not (self.root / self.settings.core_platform_dir).is_dir():
            raise ProvisionError(
                f"{self.settings.core_platform_dir}/ not found. Run this script from the white-label root directory."
            )

    def _check_firebase_tools(self) -> None:
        if not self.firebase.is_installed():
            raise ProvisionError("Firebase CLI not found. Install it with: npm install -g firebase-tools")
        if not self.flutterfire.is_callable():
            print("flutterfire not found, installing flutterfire_cli...")
            try:
                self.flutterfire.install()
            except FirebaseError as e:
                raise ProvisionError(str(e)) from e
            if not self.flutterfire.is_callable():
                raise ProvisionError(
                    "flutterfire is still not callable. Add ~/.pub-cache/bin (dart pub global bin) to your PATH."
                )

    # Firebase project

    def _list_projects(self) -> list[str]:
        try:
            return self.firebase.list_projects()
        except FirebaseError as e:
            raise ProvisionError(f"{e}\nRun `firebase login:add {self.options.firebase_account}` and retry.") from e

    def _resolve_project(self, report: ProvisionReport, projects: list[str]) -> str | None:
        opts = self.options
        if report.firebase_mode is FirebaseMode.SHARED:
            if opts.firebase_project not in projects:
                raise ProvisionError(
                    f"Firebase project {opts.firebase_project} not found for {opts.firebase_account}"
                )
            print(f"Using shared Firebase project {opts.firebase_project}")
            return opts.firebase_project

        project_id = generate_firebase_project_id(opts, self._clock())
        print(f"Creating Firebase project {project_id}...")
        try:
            self.firebase.create_project(project_id, opts.app_name)
        except FirebaseError as e:
            print(str(e))
            if not self._prompt("Continue without Firebase (placeholder configuration)?"):
                raise ProvisionError("Firebase project creation failed") from e
            report.firebase_mode = FirebaseMode.DEGRADED
            return None
        print(f"Firebase project {project_id} created")
        return project_id

    # Local project

    def _flutter_create(self) -> None:
        print("Creating Flutter project with flutter create...")
        try:
            self.flutter.create_project(
                project_name=self.options.flutter_project_name,
                org=self.options.org,
                platforms=self.options.platforms(self.settings),
                output_dir=self.client_rel_dir,
                cwd=self.root,
            )
        except FlutterError as e:
            raise ProvisionError(str(e)) from e

    def _add_dependencies(self, report: ProvisionReport) -> None:
        print("Adding dependencies...")
        core_rel = Path(*[".."] * len(Path(self.client_rel_dir).parts)) / self.settings.core_platform_dir
        try:
            warnings = add_pubspec_dependencies(
                self.client_dir,
                dependencies=self.settings.dependencies,
                core_platform_path=core_rel.as_posix(),
            )
        except PatchError as e:
            raise ProvisionError(str(e)) from e
        for warning in warnings:
            self._warn(report, warning)

        result = self.flutter.pub_get(self.client_dir)
        if not result.ok:
            self._warn(report, f"flutter pub get failed, run it manually in {self.client_rel_dir}:\n{result.output}")

    # Firebase configuration

    def _configure_firebase(self, report: ProvisionReport) -> None:
        steps = report.steps
        project_id = report.firebase_project_id
        if project_id is None:
            raise ProvisionError("No Firebase project was resolved; cannot configure Firebase")
        opts = self.options

        delay = self.settings.propagation_delay_seconds
        print(f"Waiting {delay:g}s for Firebase project {project_id} to propagate...")
        steps.run("firebase_propagation", self._sleep, delay)

        if opts.web:
            app = steps.run("web_app", self.firebase.create_web_app, project_id, opts.app_name)
            report.web_app_id = app.app_id
            site_id = hosting_site_id(project_id, opts)
            steps.run("hosting_site", self.firebase.create_hosting_site, project_id, site_id, app.app_id)
            report.hosting_site_id = site_id
            print(f"Registered web app {app.app_id} with hosting site {site_id}")

        print("Running flutterfire configure...")
        platforms = opts.platforms(self.settings)
        steps.run("flutterfire_configure", self._flutterfire_configure, project_id, platforms)

        if report.web_app_id:
            steps.run("web_app_target", self._retarget_web_app, project_id, platforms, report.web_app_id)
            steps.run(
                "hosting_config",
                merge_hosting_config,
                self.client_dir,
                site_id=report.hosting_site_id,
                public_dir=self.settings.hosting_public_dir,
            )

        steps.run("firebaserc", write_firebaserc, self.client_dir, project_id)

    def _flutterfire_configure(self, project_id: str, platforms: list[str]) -> None:
        self.flutterfire.configure(
            project_id=project_id,
            platforms=platforms,
            cwd=self.client_dir,
            max_attempts=self.settings.configure_max_attempts,
            backoff_seconds=self.settings.configure_backoff_seconds,
        )

    def _retarget_web_app(self, project_id: str, platforms: list[str], app_id: str) -> None:
        set_web_app_id(self.client_dir, app_id)
        self._flutterfire_configure(project_id, platforms)

    # Generated files

    def _render_sources(self, report: ProvisionReport) -> None:
        context = build_context(
            self.options,
            self.settings,
            firebase_configured=report.firebase_active,
            firebase_project_id=report.firebase_project_id if report.firebase_active else None,
        )
        report.steps.run("source_files", render_client_sources, self.client_dir, context, self._templates_dir)

    def _patch_web_title(self, report: ProvisionReport) -> None:
        if not self.options.web:
            report.steps.skip("web_title", "no web target")
            return
        warnings = report.steps.run("web_title", set_web_title, self.client_dir, self.options.app_name)
        for warning in warnings:
            self._warn(report, warning)

    # Output

    def _print_request(self, mode: FirebaseMode) -> None:
        opts = self.options
        print("Creating white-label client...")
        print(f"├─ Client ID: {opts.client_id}")
        print(f"├─ App Name: {opts.app_name}")
        print(f"├─ Project: {opts.project_name}")
        print(f"├─ Package: {opts.package_name}")
        print(f"├─ Flutter Project: {opts.flutter_project_name}")
        print(f"├─ Platforms: {', '.join(opts.platforms(self.settings))}")
        if mode is FirebaseMode.SKIPPED:
            print("└─ Firebase: skipped")
        elif mode is FirebaseMode.SHARED:
            print(f"└─ Firebase: shared project {opts.firebase_project} ({opts.firebase_account})")
        else:
            print(f"└─ Firebase: new project ({opts.firebase_account})")
        print()

    def _print_recovery(self, report: ProvisionReport, error: Exception) -> None:
        print(f"\nFirebase configuration failed: {error}")
        print("Continuing with placeholder Firebase configuration. To finish manually:")
        print(f"   1. cd {self.client_rel_dir}")
        print(f"   2. flutterfire configure --project {report.firebase_project_id}")
        print("   3. Use DefaultFirebaseOptions.currentPlatform in lib/client_config.dart")
        if report.hosting_site_id:
            print(f"   4. Add a hosting block for site {report.hosting_site_id} to firebase.json")
        print()

    def _print_summary(self, report: ProvisionReport) -> None:
        opts = self.options
        print(f"\nClient {opts.client_id} created successfully!")
        print(f"Location: {self.client_rel_dir}")
        print(f"Package: {opts.package_name}")

        if report.firebase_mode is FirebaseMode.CREATE:
            print(f"Firebase project: {report.firebase_project_id}")
        elif report.firebase_mode is FirebaseMode.SHARED:
            print(f"Firebase project (shared): {report.firebase_project_id}")
        if report.hosting_site_id:
            print(f"Hosting site: {report.hosting_site_id}")

        print("\nNext steps:")
        print(f"   1. cd {self.client_rel_dir}")
        print("   2. Customize color scheme and assets")
        if report.firebase_active:
            print("   3. flutter run")
            if report.hosting_site_id:
                print(f"   4. flutter build web && firebase deploy --only hosting:{report.hosting_site_id}")
            if report.firebase_mode is FirebaseMode.SHARED:
                print(f"   Note: project {report.firebase_project_id} is shared; do not delete it with this client.")
        else:
            reason = "skipped" if report.firebase_mode is FirebaseMode.SKIPPED else "not configured"
            print(f"   3. Firebase {reason}: run `flutterfire configure` and replace the placeholder options")
            print("   4. flutter run")

        if report.warnings:
            print("\nWarnings:")
            for warning in report.warnings:
                print(f"   - {warning.splitlines()[0]}")

        logger.info("Step log:\n%s", "\n".join(report.steps.summary_lines()))
