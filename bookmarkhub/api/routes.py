from __future__ import annotations

from flask import current_app, g, jsonify, request

from bookmarkhub.api import api_bp
from bookmarkhub.extensions import db
from bookmarkhub.models import Bookmark, Collection
from bookmarkhub.services.auth_client import AuthError, get_auth_client
from bookmarkhub.services.collections import (
    get_owned_collection,
    owned_bookmarks,
    owned_collections,
)
from bookmarkhub.services.common import parse_tags
from bookmarkhub.services.metadata import PageMetadata, fetch_metadata, is_public_url
from bookmarkhub.services.security import api_auth_required


class PayloadError(ValueError):
    pass


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise PayloadError("request body must be a JSON object")
    return payload


def _text(payload: dict, key: str, strip: bool = True) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PayloadError(f"{key} must be a string")
    return value.strip() if strip else value


def _tags(payload: dict) -> list[str]:
    value = payload.get("tags")
    if value is None or isinstance(value, str):
        return parse_tags(value)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return parse_tags(value)
    raise PayloadError("tags must be a string or a list of strings")


@api_bp.errorhandler(PayloadError)
def payload_error(exc):
    return jsonify({"error": str(exc)}), 400


def _session_payload(auth_session) -> dict:
    return {
        "access_token": auth_session.access_token,
        "refresh_token": auth_session.refresh_token,
        "expires_in": auth_session.expires_in,
        "user": {"id": auth_session.user.id, "email": auth_session.user.email},
    }


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "BookmarkHub"})


@api_bp.route("/fetch-meta")
def fetch_meta():
    url = (request.args.get("url") or "").strip()
    if not url:
        return jsonify({"error": "url is required"}), 400
    if not is_public_url(url):
        current_app.logger.info("Refusing metadata fetch for internal address %s", url)
        return jsonify(PageMetadata().as_dict())
    return jsonify(fetch_metadata(url).as_dict())


@api_bp.route("/v1/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = _json_object()
    email = _text(payload, "email")
    password = _text(payload, "password", strip=False)
    if not email or not password:
        return jsonify({"error": "email and password are required"}), 400

    try:
        auth_session = get_auth_client().sign_in_with_password(email, password)
    except AuthError as exc:
        return jsonify({"error": exc.message}), 401
    return jsonify(_session_payload(auth_session))


@api_bp.route("/v1/auth/refresh", methods=["POST"])
def refresh_token():
    payload = _json_object()
    token = _text(payload, "refresh_token")
    if not token:
        return jsonify({"error": "refresh_token is required"}), 400

    try:
        auth_session = get_auth_client().refresh_session(token)
    except AuthError as exc:
        return jsonify({"error": exc.message}), 401
    return jsonify(_session_payload(auth_session))


@api_bp.route("/v1/collections", methods=["GET"])
@api_auth_required()
def collections_list_api():
    items = owned_collections(g.api_user.id).order_by(Collection.name.asc()).all()
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/v1/bookmarks", methods=["GET"])
@api_auth_required()
def bookmarks_list_api():
    query = owned_bookmarks(g.api_user.id)
    collection_id = request.args.get("collection_id", type=int)
    if collection_id:
        query = query.filter_by(collection_id=collection_id)
    items = query.order_by(Bookmark.created_at.desc()).all()
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/v1/bookmarks", methods=["POST"])
@api_auth_required()
def bookmarks_create_api():
    user = g.api_user
    payload = _json_object()
    url = _text(payload, "url")
    if not url:
        return jsonify({"error": "url is required"}), 400

    collection_id = payload.get("collection_id")
    if collection_id not in (None, ""):
        collection = get_owned_collection(user.id, collection_id)
        if collection is None:
            return jsonify({"error": "collection not found"}), 404
        collection_id = collection.id
    else:
        collection_id = None

    bookmark = Bookmark(
        user_id=user.id,
        collection_id=collection_id,
        url=url,
        title=_text(payload, "title") or None,
        description=_text(payload, "description") or None,
        favicon_url=_text(payload, "favicon_url") or None,
        tags=_tags(payload),
    )
    if not (bookmark.title and bookmark.description and bookmark.favicon_url):
        metadata = fetch_metadata(url)
        bookmark.title = bookmark.title or metadata.title
        bookmark.description = bookmark.description or metadata.description
        bookmark.favicon_url = bookmark.favicon_url or metadata.favicon_url

    db.session.add(bookmark)
    db.session.commit()
    return jsonify(bookmark.as_dict()), 201
