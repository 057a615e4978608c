import secrets
from datetime import datetime, timezone

from flask_login import UserMixin

from bookmarkhub.extensions import db


SLUG_BYTES = 6  # token_urlsafe(6) is exactly 8 characters


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_slug() -> str:
    return secrets.token_urlsafe(SLUG_BYTES)


class SessionUser(UserMixin):
    """Identity resolved from the auth service for the current request."""

    def __init__(self, user_id: str, email: str | None = None):
        self.id = user_id
        self.email = email

    def __repr__(self) -> str:
        return f"<SessionUser {self.id}>"


class Collection(db.Model):
    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    slug = db.Column(db.String(16), nullable=True, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    bookmarks = db.relationship(
        "Bookmark",
        backref="collection",
        lazy="dynamic",
        passive_deletes=True,
    )

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_public": self.is_public,
            "slug": self.slug,
            "created_at": self.created_at.isoformat(),
        }


class Bookmark(db.Model):
    __tablename__ = "bookmarks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    collection_id = db.Column(
        db.Integer,
        db.ForeignKey("collections.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    url = db.Column(db.Text, nullable=False)
    title = db.Column(db.String(512), nullable=True)
    description = db.Column(db.Text, nullable=True)
    favicon_url = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("ix_bookmark_user_created", "user_id", "created_at"),
    )

    def as_dict(self):
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "favicon_url": self.favicon_url,
            "tags": list(self.tags or []),
            "collection_id": self.collection_id,
            "created_at": self.created_at.isoformat(),
        }
