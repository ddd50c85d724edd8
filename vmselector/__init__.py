"""nix-vm-selector package."""

__all__ = [
    "builder",
    "cli",
    "config",
    "constants",
    "exceptions",
    "host",
    "menu",
    "models",
    "script",
    "utils",
    "validator",
]
