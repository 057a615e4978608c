"""Ownership scopes and visibility rules for collections and bookmarks.

These queries stand in for row-level policies: owners see and change only
their own rows, anonymous readers see a collection (and its bookmarks) only
while it is public.
"""

from __future__ import annotations

import logging

from bookmarkhub.extensions import db
from bookmarkhub.models import Bookmark, Collection, generate_slug


logger = logging.getLogger(__name__)

SLUG_ATTEMPTS = 5


def owned_collections(user_id: str):
    return Collection.query.filter_by(user_id=user_id)


def owned_bookmarks(user_id: str):
    return Bookmark.query.filter_by(user_id=user_id)


def get_owned_collection(user_id: str, collection_id) -> Collection | None:
    if collection_id in (None, ""):
        return None
    try:
        collection_id = int(collection_id)
    except (TypeError, ValueError):
        return None
    return owned_collections(user_id).filter_by(id=collection_id).first()


def get_public_collection(slug: str) -> Collection | None:
    if not slug:
        return None
    return Collection.query.filter_by(slug=slug, is_public=True).first()


def public_bookmarks(collection: Collection) -> list[Bookmark]:
    if not collection.is_public:
        return []
    return (
        Bookmark.query.filter_by(collection_id=collection.id)
        .order_by(Bookmark.created_at.desc())
        .all()
    )


def _unused_slug() -> str:
    for _ in range(SLUG_ATTEMPTS):
        slug = generate_slug()
        if not Collection.query.filter_by(slug=slug).first():
            return slug
        logger.info("Slug collision on %s, retrying", slug)
    raise RuntimeError("Could not generate an unused collection slug.")


def set_visibility(collection: Collection, is_public: bool) -> Collection:
    """Publish or unpublish ``collection``.

    The slug is assigned the first time a collection goes public and is kept
    from then on, so re-publishing reuses the same share URL.
    """
    collection.is_public = bool(is_public)
    if collection.is_public and not collection.slug:
        collection.slug = _unused_slug()
    return collection


def delete_collection(collection: Collection) -> None:
    Bookmark.query.filter_by(collection_id=collection.id).update(
        {"collection_id": None}
    )
    db.session.delete(collection)
