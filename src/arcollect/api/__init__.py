"""HTTP surface for the collection functions."""

from arcollect.api.app import create_app

__all__ = ["create_app"]
