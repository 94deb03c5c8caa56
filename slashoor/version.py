"""Version info for slashoor."""

import os
from importlib.metadata import PackageNotFoundError, version as package_version

PACKAGE_NAME = "slashoor"


def get_version() -> str:
    """Get slashoor version string."""
    try:
        return package_version(PACKAGE_NAME)
    except PackageNotFoundError:
        return os.environ.get("SLASHOOR_VERSION", "0.1.0")
