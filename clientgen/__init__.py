"""
clientgen package

This package implements the white-label client generator as a CLI-first utility.

Key responsibilities are split across modules:
- `options.py`: validate CLI input, derive names, load YAML settings
- `runner.py`: the only place that spawns external processes
- `flutter_tool.py`: `flutter create` / `flutter pub get`
- `firebase_client.py`: isolated `firebase` / `flutterfire` CLI interactions
- `patching.py`: edits to pubspec.yaml, firebase.json, .firebaserc, web/index.html
- `renderer.py`: deterministic template rendering into the client project
- `steps.py`: per-step status tracking for a generator run
- `provisioner.py`: orchestration (confirm -> check -> firebase -> scaffold -> configure -> render)
- `cli.py`: CLI entrypoint and exit codes
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
