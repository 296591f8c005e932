"""HTTP API package."""

from buddy.api.app import create_app, main

__all__ = ["create_app", "main"]
