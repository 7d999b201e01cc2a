"""Service Guard: health monitoring and provider fallback for remote services."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("service-guard")
except Exception:
    __version__ = "dev"
