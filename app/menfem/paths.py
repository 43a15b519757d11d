"""
Route table: logical names -> URL path templates.

Single source of truth shared by the blueprints and anything that builds links.
"""
from __future__ import annotations

from types import MappingProxyType
from urllib.parse import quote

HOME = "/"

AUTH = MappingProxyType(
    {
        "SIGN_IN": "/auth/sign-in",
        "SIGN_UP": "/auth/sign-up",
        "SIGN_OUT": "/auth/sign-out",
        "VERIFY_EMAIL": "/auth/verify-email",
        "RESET_PASSWORD": "/auth/reset-password",
    }
)

ARTICLES_LIST = "/articles"

PROFILE = "/profile"
DASHBOARD = "/dashboard"

ADMIN = MappingProxyType(
    {
        "DASHBOARD": "/admin",
        "ARTICLES": "/admin/articles",
        "USERS": "/admin/users",
        "NEWSLETTER": "/admin/newsletter",
        "EVENTS": "/admin/events",
    }
)


def article_detail(slug: str) -> str:
    from app.menfem.modules.content.service import validate_slug

    validate_slug(slug)
    return f"{ARTICLES_LIST}/{quote(slug, safe='')}"


ARTICLES = MappingProxyType({"LIST": ARTICLES_LIST, "DETAIL": article_detail})

PATHS = MappingProxyType(
    {
        "HOME": HOME,
        "AUTH": AUTH,
        "ARTICLES": ARTICLES,
        "PROFILE": PROFILE,
        "DASHBOARD": DASHBOARD,
        "ADMIN": ADMIN,
    }
)
