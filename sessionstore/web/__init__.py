"""Web layer: ASGI middleware backed by the session store."""
