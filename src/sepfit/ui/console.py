"""Console configuration and theme for SepFit output.

This module provides the central console instance and theme used by the
logging handlers so that every message shares the same styling.
"""

from importlib import metadata

from rich.console import Console
from rich.theme import Theme

try:
    VERSION = metadata.version("sepfit")
except metadata.PackageNotFoundError:
    VERSION = "dev"

SEPFIT_THEME = Theme(
    {
        # --- Semantic Status ---
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "info": "cyan",
        # --- Structure ---
        "header": "bold cyan",
        # --- Data & Values ---
        "key": "cyan",
        "value": "green",
        "metric": "bold green",
    }
)

# Single console instance for the whole package
console = Console(theme=SEPFIT_THEME, stderr=True)

__all__ = ["SEPFIT_THEME", "VERSION", "console"]
