"""WinMD: a Markdown document workspace with an AI assistant."""

__version__ = "0.1.0"

__all__ = ["__version__"]
