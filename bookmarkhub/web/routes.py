from __future__ import annotations

from flask import abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy import func

from bookmarkhub.extensions import db
from bookmarkhub.models import Bookmark, Collection
from bookmarkhub.services.bookmark_import import (
    insert_bookmarks,
    parse_bookmark_html,
    select_entries,
)
from bookmarkhub.services.collections import (
    delete_collection,
    get_owned_collection,
    get_public_collection,
    owned_bookmarks,
    owned_collections,
    public_bookmarks,
    set_visibility,
)
from bookmarkhub.services.common import clean_optional, parse_tags, safe_redirect_target
from bookmarkhub.services.metadata import PageMetadata, fetch_metadata
from bookmarkhub.web import web_bp


def _collection_choices() -> list[Collection]:
    return owned_collections(current_user.id).order_by(Collection.name.asc()).all()


def _selected_ids_from_form(field_name: str = "selected") -> set[int]:
    parsed: set[int] = set()
    for value in request.form.getlist(field_name):
        try:
            parsed_id = int(value)
        except (TypeError, ValueError):
            continue
        if parsed_id >= 0:
            parsed.add(parsed_id)
    return parsed


def _target_collection_from_form() -> tuple[int | None, bool]:
    """Return (collection_id, ok) for the ``collection_id`` form field."""
    raw = request.form.get("collection_id")
    if not raw:
        return None, True
    collection = get_owned_collection(current_user.id, raw)
    if collection is None:
        return None, False
    return collection.id, True


def _fill_bookmark_from_form(item: Bookmark) -> None:
    item.url = (request.form.get("url") or "").strip()
    item.title = clean_optional(request.form.get("title"))
    item.description = clean_optional(request.form.get("description"))
    item.favicon_url = clean_optional(request.form.get("favicon_url"))
    item.tags = parse_tags(request.form.get("tags") or "")


@web_bp.route("/")
def home():
    return render_template("home.html")


@web_bp.route("/dashboard")
@login_required
def dashboard():
    counts_subq = (
        db.session.query(
            Bookmark.collection_id,
            func.count(Bookmark.id).label("bookmark_count"),
        )
        .filter(Bookmark.user_id == current_user.id)
        .group_by(Bookmark.collection_id)
        .subquery()
    )
    rows = (
        db.session.query(Collection, counts_subq.c.bookmark_count)
        .outerjoin(counts_subq, Collection.id == counts_subq.c.collection_id)
        .filter(Collection.user_id == current_user.id)
        .order_by(Collection.created_at.desc())
        .all()
    )
    uncategorized = (
        owned_bookmarks(current_user.id)
        .filter(Bookmark.collection_id.is_(None))
        .order_by(Bookmark.created_at.desc())
        .all()
    )
    return render_template(
        "dashboard.html",
        collections=[(collection, count or 0) for collection, count in rows],
        uncategorized=uncategorized,
    )


@web_bp.route("/dashboard/collections", methods=["POST"])
@login_required
def collections_create():
    name = (request.form.get("name") or "").strip()
    if not name:
        flash("Collection name is required.", "error")
        return redirect(url_for("web.dashboard"))

    collection = Collection(
        user_id=current_user.id,
        name=name,
        description=clean_optional(request.form.get("description")),
    )
    set_visibility(collection, request.form.get("is_public") == "1")
    db.session.add(collection)
    db.session.commit()
    flash("Collection created.", "success")
    return redirect(url_for("web.collection_detail", collection_id=collection.id))


@web_bp.route("/dashboard/collections/<int:collection_id>")
@login_required
def collection_detail(collection_id: int):
    collection = owned_collections(current_user.id).filter_by(
        id=collection_id
    ).first_or_404()
    items = (
        owned_bookmarks(current_user.id)
        .filter_by(collection_id=collection.id)
        .order_by(Bookmark.created_at.desc())
        .all()
    )
    return render_template("collection.html", collection=collection, items=items)


@web_bp.route("/dashboard/collections/<int:collection_id>/edit", methods=["GET", "POST"])
@login_required
def collections_edit(collection_id: int):
    collection = owned_collections(current_user.id).filter_by(
        id=collection_id
    ).first_or_404()
    if request.method == "POST":
        name = (request.form.get("name") or "").strip()
        if not name:
            flash("Collection name is required.", "error")
            return render_template("collection_form.html", collection=collection)
        collection.name = name
        collection.description = clean_optional(request.form.get("description"))
        db.session.commit()
        flash("Collection updated.", "success")
        return redirect(url_for("web.collection_detail", collection_id=collection.id))

    return render_template("collection_form.html", collection=collection)


@web_bp.route("/dashboard/collections/<int:collection_id>/visibility", methods=["POST"])
@login_required
def collections_visibility(collection_id: int):
    collection = owned_collections(current_user.id).filter_by(
        id=collection_id
    ).first_or_404()
    set_visibility(collection, request.form.get("is_public") == "1")
    db.session.commit()
    if collection.is_public:
        flash("Collection is now public.", "success")
    else:
        flash("Collection is now private.", "success")
    return redirect(url_for("web.collection_detail", collection_id=collection.id))


@web_bp.route("/dashboard/collections/<int:collection_id>/delete", methods=["POST"])
@login_required
def collections_delete(collection_id: int):
    collection = owned_collections(current_user.id).filter_by(
        id=collection_id
    ).first_or_404()
    delete_collection(collection)
    db.session.commit()
    flash("Collection deleted. Its bookmarks are now uncategorized.", "success")
    return redirect(url_for("web.dashboard"))


@web_bp.route("/dashboard/bookmarks/new", methods=["GET", "POST"])
@login_required
def bookmarks_new():
    collections = _collection_choices()
    if request.method == "POST":
        item = Bookmark(user_id=current_user.id)
        _fill_bookmark_from_form(item)
        collection_id, ok = _target_collection_from_form()
        if not item.url:
            flash("URL is required.", "error")
        elif not ok:
            flash("Collection not found.", "error")
        else:
            item.collection_id = collection_id
            db.session.add(item)
            db.session.commit()
            flash("Bookmark saved.", "success")
            return redirect(
                url_for("web.collection_detail", collection_id=collection_id)
                if collection_id
                else url_for("web.dashboard")
            )
        return render_template(
            "bookmark_form.html",
            item=None,
            form=request.form,
            collections=collections,
        )

    url = (request.args.get("url") or "").strip()
    metadata = fetch_metadata(url) if url else PageMetadata()
    prefill = {
        "url": url,
        "title": metadata.title or "",
        "description": metadata.description or "",
        "favicon_url": metadata.favicon_url or "",
        "collection_id": request.args.get("collection_id") or "",
    }
    return render_template(
        "bookmark_form.html", item=None, form=prefill, collections=collections
    )


@web_bp.route("/dashboard/bookmarks/<int:bookmark_id>/edit", methods=["GET", "POST"])
@login_required
def bookmarks_edit(bookmark_id: int):
    item = owned_bookmarks(current_user.id).filter_by(id=bookmark_id).first_or_404()
    collections = _collection_choices()
    next_url = safe_redirect_target(
        request.form.get("next") or request.args.get("next"),
        url_for("web.dashboard"),
    )
    if request.method == "POST":
        url = (request.form.get("url") or "").strip()
        collection_id, ok = _target_collection_from_form()
        if not url:
            flash("URL is required.", "error")
        elif not ok:
            flash("Collection not found.", "error")
        else:
            _fill_bookmark_from_form(item)
            item.collection_id = collection_id
            db.session.commit()
            flash("Bookmark updated.", "success")
            return redirect(next_url)

    form = {
        "url": item.url,
        "title": item.title or "",
        "description": item.description or "",
        "favicon_url": item.favicon_url or "",
        "tags": ", ".join(item.tags or []),
        "collection_id": str(item.collection_id or ""),
    }
    return render_template(
        "bookmark_form.html",
        item=item,
        form=request.form if request.method == "POST" else form,
        collections=collections,
        next_url=next_url,
    )


@web_bp.route("/dashboard/bookmarks/<int:bookmark_id>/delete", methods=["POST"])
@login_required
def bookmarks_delete(bookmark_id: int):
    item = owned_bookmarks(current_user.id).filter_by(id=bookmark_id).first_or_404()
    db.session.delete(item)
    db.session.commit()
    flash("Bookmark deleted.", "success")
    next_url = safe_redirect_target(
        request.form.get("next") or request.args.get("next"),
        url_for("web.dashboard"),
    )
    return redirect(next_url)


@web_bp.route("/dashboard/import", methods=["GET", "POST"])
@login_required
def import_bookmarks():
    collections = _collection_choices()
    if request.method == "POST":
        upload = request.files.get("bookmark_file")
        if not upload or not upload.filename:
            flash("Please choose an HTML export file.", "error")
            return render_template("import.html", collections=collections)

        html = upload.read().decode("utf-8", errors="ignore")
        entries = list(enumerate(parse_bookmark_html(html)))
        if not entries:
            flash("No bookmarks found in upload.", "error")
            return render_template("import.html", collections=collections)

        return render_template(
            "import_preview.html",
            html=html,
            entries=entries,
            collections=collections,
        )

    return render_template("import.html", collections=collections)


@web_bp.route("/dashboard/import/confirm", methods=["POST"])
@login_required
def import_confirm():
    html = request.form.get("html") or ""
    selected = _selected_ids_from_form("selected")
    if not selected:
        flash("Select at least one bookmark to import.", "error")
        return redirect(url_for("web.import_bookmarks"))

    collection_id, ok = _target_collection_from_form()
    if not ok:
        flash("Collection not found.", "error")
        return redirect(url_for("web.import_bookmarks"))

    report = insert_bookmarks(
        current_user.id,
        select_entries(parse_bookmark_html(html), selected),
        collection_id=collection_id,
    )
    if report.failed_batches and report.inserted:
        flash(
            f"Imported {report.inserted} of {report.total} bookmarks; "
            f"{report.failed} could not be saved.",
            "error",
        )
    elif report.failed_batches:
        flash("Import failed. No bookmarks were saved.", "error")
    else:
        flash(f"Imported {report.inserted} bookmarks.", "success")
    return render_template("import_result.html", report=report)


@web_bp.route("/share/<slug>")
def share(slug: str):
    collection = get_public_collection(slug)
    if collection is None:
        abort(404)
    return render_template(
        "share.html", collection=collection, items=public_bookmarks(collection)
    )
