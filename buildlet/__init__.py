"""OpenBSD buildlet provisioner package."""

__all__ = [
    "autoinstall",
    "cli",
    "config",
    "constants",
    "dialogue",
    "disk",
    "emulator",
    "exceptions",
    "models",
    "pipeline",
    "server",
    "sets",
    "utils",
]
