"""memworker - observe coding sessions and distill tool usage into memory."""

__version__ = "0.1.0"
