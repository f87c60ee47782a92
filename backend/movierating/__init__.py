"""Movie rating service: accounts, authentication and token lifecycle."""

__version__ = "1.0.0"
