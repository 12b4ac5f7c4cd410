"""API routers for chat and setup endpoints."""
