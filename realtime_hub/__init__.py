"""
Realtime hub: live connection registry and room-based broadcast service.

Business logic publishes domain events onto the event bus; the hub fans them
out to the live connections that should hear about them.
"""

__version__ = "0.1.0"
