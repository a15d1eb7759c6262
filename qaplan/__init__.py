"""
Core package for the QA sample-plan allocation engine.

The engine pieces (plan normalization, selection state, sampling, payload
building) are importable on their own; the orchestrator and HTTP client sit
on top of them.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("qaplan")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
