"""Project-scoped todos kept next to the code they are about."""

__version__ = "0.1.0"
