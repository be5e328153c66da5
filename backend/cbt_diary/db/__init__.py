"""Storage package: shared Redis pool backing diary drafts."""

from cbt_diary.db.redis import close_redis, get_redis, init_redis, user_namespace

__all__ = [
    "close_redis",
    "get_redis",
    "init_redis",
    "user_namespace",
]
