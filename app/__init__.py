"""Clip Audio API - Core application modules.

Provides:
- Settings and the fixed conversion profile
- Pydantic value types
- Utilities: filenames, staging
"""

__version__ = "0.1.0"
