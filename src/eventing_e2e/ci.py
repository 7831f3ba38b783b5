"""CI environment detection.

Environment Variables:
    CI: "true" when running under a CI system
    PROW_JOB_ID: Set by Prow for every job
    ARTIFACTS: Directory whose contents are uploaded after the job finishes
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ARTIFACTS_DIR = "artifacts"


def is_ci() -> bool:
    """Return True when running inside a CI job."""
    if os.environ.get("CI", "").lower() == "true":
        return True
    return bool(os.environ.get("PROW_JOB_ID"))


def local_artifacts_dir() -> Path:
    """Return the directory for artifacts uploaded at the end of the CI job."""
    return Path(os.environ.get("ARTIFACTS") or DEFAULT_ARTIFACTS_DIR)


__all__ = ["DEFAULT_ARTIFACTS_DIR", "is_ci", "local_artifacts_dir"]
