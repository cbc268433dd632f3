"""
Configuration for prereq-client.

Loads settings from environment variables and an optional .env file. Settings
objects are passed explicitly to the ledger client and submission pipeline.
"""

from prereq_client.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
