"""
Generation Relay Core Components

Provides foundational infrastructure for the relay:
- Configuration loaded from the environment
- Error taxonomy shared by every layer
- Fixed-window rate limiter for admission control
"""

from .config import Config, get_config
from .errors import GenerationError
from .rate_limiter import RateLimiter

__all__ = ["Config", "get_config", "GenerationError", "RateLimiter"]
