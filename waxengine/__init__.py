"""Scan-facts contract, repository configuration, global state, auto-install policy and language-pack installation."""

__version__ = "0.1.0a1"