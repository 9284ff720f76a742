"""HTTP API for quota availability and invocations."""

from quotagate.api.app import create_app

__all__ = ["create_app"]
