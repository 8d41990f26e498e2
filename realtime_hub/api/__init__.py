"""HTTP and WebSocket routes for realtime_hub."""
