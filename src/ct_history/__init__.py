"""ClearTool history retrieval and parsing."""

__version__ = "0.1.0"
