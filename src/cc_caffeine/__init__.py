import sys
from importlib.metadata import version, PackageNotFoundError

from . import commands


def main():
    """Main entry point for the package."""
    sys.exit(commands.main())


# Package metadata helpers
try:
    __version__ = version("cc-caffeine")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0+dev"

APP_NAME = "cc-caffeine"

# Public API
__all__ = ["main", "commands", "__version__", "APP_NAME"]
