"""termpilot - a terminal coding assistant."""

__version__ = "0.1.0"

from termpilot.config import Config
from termpilot.main import main

__all__ = ["Config", "main", "__version__"]
