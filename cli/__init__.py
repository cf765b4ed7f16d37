"""Command line for running the device simulator and browsing its readings."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` must keep resolving to the module, not the Typer instance, since
# collaborators such as ``cli.app.ApiClient`` and ``cli.app.run_simulator`` are
# patched through that path.

__all__ = []
