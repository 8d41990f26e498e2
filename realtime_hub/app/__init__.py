"""FastAPI application assembly for realtime_hub."""
