"""
Structured logging package for the realtime hub.

All imports should use explicit paths like
'from realtime_hub.structured_logging.enhanced_logging_config import get_logger'.

The directory is named 'structured_logging' rather than 'logging' so it never
shadows the standard library module.
"""

__all__: list[str] = []
