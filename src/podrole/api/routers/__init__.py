"""API routers for podrole."""
