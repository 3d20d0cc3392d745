"""Probe CLI for the deployed EventBridge integration example.

The command surface is implemented with Typer and Rich for help and error
ergonomics, while command payload outputs remain machine-friendly JSON.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
