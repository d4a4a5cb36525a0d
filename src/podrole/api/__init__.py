"""HTTP surface for podrole: metrics scraping and health probes."""

from podrole.api.app import create_app

__all__ = ["create_app"]
