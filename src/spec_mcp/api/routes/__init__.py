"""REST and WebSocket routers of the dashboard API."""
