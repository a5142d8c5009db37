"""
Database models - import all models here so Alembic can discover them.
"""
from autoblog.models.queue_topic import QueueTopic
from autoblog.models.generation_log import GenerationLog
from autoblog.models.post import Post, MediaAsset
from autoblog.models.app_setting import AppSetting

__all__ = [
    "QueueTopic",
    "GenerationLog",
    "Post",
    "MediaAsset",
    "AppSetting",
]
