"""Version of the tasksync package, read from the installed distribution."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tasksync")
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    __version__ = "0.0.0"
