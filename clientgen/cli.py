"""
cli.py

Responsibility: CLI entrypoint for the white-label client generator.

High-level flow:
1) Parse argv and validate it -> `ClientOptions`
2) Load optional YAML settings -> `GeneratorSettings`
3) Hand both to `ClientProvisioner` and map its outcome to an exit code

This module is the only place that turns exceptions into exit codes:
- Validation/settings errors: one-line message + usage, exit 1
- Provisioning errors: one-line message, exit 1
- Declined confirmation, help: exit 0
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from clientgen import __version__
from clientgen.firebase_client import FirebaseError
from clientgen.options import (
    DEFAULT_SETTINGS_FILE,
    SettingsError,
    ValidationError,
    build_options,
    load_settings,
)
from clientgen.patching import PatchError
from clientgen.provisioner import ClientProvisioner, ProvisionError
from clientgen.renderer import RenderError
from clientgen.runner import CommandError
from clientgen.steps import StepStateError

EXAMPLES = """\
Examples:
  # Restaurant app, new Firebase project
  create-client -c acme -n "Acme App" -p restaurant -a you@example.com

  # Business directory with web hosting, sharing an existing Firebase project
  create-client -c nyc_biz -n "NYC Business Directory" -p business_directory \\
      -a you@example.com -f business-directory-shared --web

  # No Firebase at all, custom organization
  create-client -c miami_hotels -n "Miami Hotels" -p hotel_booking -o com.yourcompany --skip-firebase

Generated package: {org}.{project-name}.{client-id}
Generated location: clients/{client-id}/
"""


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root = logging.getLogger("clientgen")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


class UsageError(ValueError):
    pass


class _ArgumentParser(argparse.ArgumentParser):
    """Reports bad command lines as `UsageError` so `main` can exit with 1."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(
        prog="create-client",
        description="White Label Client Generator - scaffold a branded Flutter client on top of core_platform",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-c", "--client-id", default=None, help="Client identifier (letters, numbers, underscores)")
    p.add_argument("-n", "--app-name", default=None, help="Human readable app name")
    p.add_argument(
        "-p",
        "--project-name",
        default=None,
        help="Base project name (e.g., business_directory, food_delivery)",
    )
    p.add_argument("-o", "--org", default="com.example", help="Organization domain (default: com.example)")

    p.add_argument("-a", "--firebase-account", default=None, help="Firebase account email (required unless --skip-firebase)")
    p.add_argument(
        "-f",
        "--firebase-project",
        default=None,
        help="Existing Firebase project id to share instead of creating a new one",
    )
    p.add_argument("-w", "--web", action="store_true", help="Also generate the web platform and a hosting site")
    p.add_argument("--skip-firebase", action="store_true", help="Do not touch Firebase; write placeholder config")

    p.add_argument(
        "--settings",
        default=None,
        help=f"YAML settings file (default: ./{DEFAULT_SETTINGS_FILE} when present)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log every external command")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _settings_path(args: argparse.Namespace, root: Path) -> Path | None:
    if args.settings:
        return Path(args.settings)
    default = root / DEFAULT_SETTINGS_FILE
    return default if default.exists() else None


def main(argv: list[str] | None = None, **provisioner_kwargs: Any) -> int:
    """
    Run the generator. Extra keyword arguments are passed to `ClientProvisioner`
    (root, runner, prompt, sleep, clock), which is how tests inject fakes.
    """
    parser = _build_parser()
    raw = sys.argv[1:] if argv is None else argv
    if not raw:
        parser.print_help()
        return 0
    try:
        args = parser.parse_args(raw)
    except UsageError as e:
        print(f"Error: {e}\n")
        parser.print_usage()
        return 1
    _configure_logging(args.verbose)

    root = Path(provisioner_kwargs.get("root") or Path.cwd())
    try:
        options = build_options(
            client_id=args.client_id,
            app_name=args.app_name,
            project_name=args.project_name,
            org=args.org,
            firebase_account=args.firebase_account,
            firebase_project=args.firebase_project,
            web=args.web,
            skip_firebase=args.skip_firebase,
        )
        settings = load_settings(_settings_path(args, root))
    except (ValidationError, SettingsError) as e:
        print(f"Error: {e}\n")
        parser.print_usage()
        return 1

    provisioner_kwargs["root"] = root
    try:
        report = ClientProvisioner(options, settings, **provisioner_kwargs).run()
    except (ProvisionError, FirebaseError, CommandError, PatchError, RenderError, StepStateError, OSError) as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 1
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
