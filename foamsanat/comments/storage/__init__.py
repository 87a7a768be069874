"""Comment storage engines."""

from foamsanat.comments.storage.base import CommentStorage, StorageHealth
from foamsanat.comments.storage.manager import StorageManager, build_storage
from foamsanat.comments.storage.postgres import PostgresCommentStorage
from foamsanat.comments.storage.sqlite import SqliteCommentStorage


__all__ = [
    "CommentStorage",
    "PostgresCommentStorage",
    "SqliteCommentStorage",
    "StorageHealth",
    "StorageManager",
    "build_storage",
]
