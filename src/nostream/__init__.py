"""OpenAI-compatible chat gateway with alias routing and emulated streaming."""

__version__ = "0.1.0"
