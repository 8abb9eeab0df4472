"""FastAPI routers for session administration."""
