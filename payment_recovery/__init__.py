"""Payment exception and recovery engine for loan servicing."""

__version__ = "0.1.0"
