"""
RestGate Backend — ORM Models
=============================

Importing this package registers every table with `Base.metadata`.
"""

from restgate.models.auth import Session, User
from restgate.models.post import Comment, Post

__all__ = ["Comment", "Post", "Session", "User"]
