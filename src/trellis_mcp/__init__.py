"""Task lifecycle and multi-agent context orchestration over an MCP surface."""

__version__ = "0.1.0"

__all__ = ["__version__"]
