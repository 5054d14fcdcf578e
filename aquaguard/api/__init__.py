"""HTTP surface: digest acknowledgement, alert transitions and health."""

from aquaguard.api.app import create_app

__all__ = ["create_app"]
