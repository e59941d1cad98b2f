"""Domain Types — identity aliases and closed value sets for every campus entity.

Invariants:
    - Ids are opaque strings assigned by the document store — never parsed
    - Every closed set of states is a str Enum whose value is the wire value
    - Enum lookup from wire values goes through the Enum constructor (ValueError on miss)

Design Decisions:
    - NewType over wrapper classes: zero runtime cost, documents intent in signatures
    - str Enums: documents serialize without custom encoders
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

CourseId = NewType("CourseId", str)
UserId = NewType("UserId", str)
ChatId = NewType("ChatId", str)
MessageId = NewType("MessageId", str)
PostId = NewType("PostId", str)
CommentId = NewType("CommentId", str)


# ─── Collections ─────────────────────────────────────────────────

class Collection(str, Enum):
    """Logical document collections in the backing store."""
    COURSES = "courses"
    USERS = "users"
    CHATS = "chats"
    MESSAGES = "messages"
    POSTS = "posts"
    COMMENTS = "comments"


# ─── Enums ───────────────────────────────────────────────────────

class CourseStatus(str, Enum):
    """Course lifecycle — enrollment only proceeds while PUBLISHED."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    SUSPENDED = "suspended"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class UserRole(str, Enum):
    """User roles — drive role-conditional required fields."""
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"

    @property
    def display_name(self) -> str:
        return "Administrator" if self is UserRole.ADMIN else self.value.capitalize()


class ChatType(str, Enum):
    """Chat shapes — DIRECT has exactly 2 participants, GROUP at least 3."""
    DIRECT = "direct"
    GROUP = "group"
    COURSE = "course"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Delivery states. READ and FAILED are terminal."""
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
