"""
Redis infrastructure.

Only the distributed lock backend uses Redis; see RedisService.
"""

from notequiz.core.redis.service import RedisService

__all__ = ["RedisService"]
