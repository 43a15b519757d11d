from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.menfem import paths, store
from app.menfem.api import article_to_dict, category_to_dict, page_to_dict, request_payload
from app.menfem.auth import current_user
from app.menfem.rbac import admin_required
from app.menfem.db import db_session
from app.menfem.modules.content.models import Article, Category, Comment
from app.menfem.modules.content.service import (
    create_article,
    create_category,
    delete_article,
    delete_category,
    delete_comment,
    list_all_articles,
    list_categories,
    publish_article,
    unpublish_article,
    update_article,
    update_category,
)

bp = Blueprint("content_admin", __name__)

ARTICLES = paths.ADMIN["ARTICLES"]
CATEGORIES = paths.ADMIN["DASHBOARD"] + "/categories"


def _article_detail(article: Article) -> dict:
    return article_to_dict(article, include_content=True)


# ---------- Articles ----------
@bp.get(ARTICLES)
@admin_required
def articles_list():
    s = db_session()
    try:
        page = int(request.args.get("page") or 1)
    except ValueError:
        page = 1
    result = list_all_articles(s, page=page, per_page=50)
    return jsonify(page_to_dict(result, _article_detail))


@bp.post(ARTICLES)
@admin_required
def articles_create():
    s = db_session()
    article = create_article(s, request_payload(), current_user())
    s.commit()
    return jsonify({"ok": True, "article": _article_detail(article)}), 201


@bp.get(ARTICLES + "/<article_id>")
@admin_required
def article_get(article_id: str):
    s = db_session()
    return jsonify({"ok": True, "article": _article_detail(store.get(s, Article, article_id))})


@bp.patch(ARTICLES + "/<article_id>")
@admin_required
def article_update(article_id: str):
    s = db_session()
    article = update_article(s, store.get(s, Article, article_id), request_payload())
    s.commit()
    return jsonify({"ok": True, "article": _article_detail(article)})


@bp.post(ARTICLES + "/<article_id>/publish")
@admin_required
def article_publish(article_id: str):
    s = db_session()
    article = publish_article(s, store.get(s, Article, article_id))
    s.commit()
    return jsonify({"ok": True, "article": _article_detail(article)})


@bp.post(ARTICLES + "/<article_id>/unpublish")
@admin_required
def article_unpublish(article_id: str):
    s = db_session()
    article = unpublish_article(s, store.get(s, Article, article_id))
    s.commit()
    return jsonify({"ok": True, "article": _article_detail(article)})


@bp.delete(ARTICLES + "/<article_id>")
@admin_required
def article_delete(article_id: str):
    s = db_session()
    delete_article(s, store.get(s, Article, article_id))
    s.commit()
    return jsonify({"ok": True})


@bp.delete(ARTICLES + "/<article_id>/comments/<comment_id>")
@admin_required
def comment_delete(article_id: str, comment_id: str):
    s = db_session()
    comment = store.get(s, Comment, comment_id)
    if comment.article_id != article_id:
        return jsonify({"ok": False, "error": "not_found", "message": "Comment not found."}), 404
    delete_comment(s, comment)
    s.commit()
    return jsonify({"ok": True})


# ---------- Categories ----------
@bp.get(CATEGORIES)
@admin_required
def categories_list():
    s = db_session()
    return jsonify({"ok": True, "items": [category_to_dict(c) for c in list_categories(s)]})


@bp.post(CATEGORIES)
@admin_required
def categories_create():
    s = db_session()
    category = create_category(s, request_payload())
    s.commit()
    return jsonify({"ok": True, "category": category_to_dict(category)}), 201


@bp.patch(CATEGORIES + "/<category_id>")
@admin_required
def category_update(category_id: str):
    s = db_session()
    category = update_category(s, store.get(s, Category, category_id), request_payload())
    s.commit()
    return jsonify({"ok": True, "category": category_to_dict(category)})


@bp.delete(CATEGORIES + "/<category_id>")
@admin_required
def category_delete(category_id: str):
    s = db_session()
    delete_category(s, store.get(s, Category, category_id))
    s.commit()
    return jsonify({"ok": True})
