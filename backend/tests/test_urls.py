import pytest

from zenyukti.core.urls import origin_of, resolve_avatar_url

ORIGIN = "http://localhost:5000"


@pytest.mark.parametrize("avatar,expected", [
    (None, None),
    ("", None),
    ("/uploads/avatars/1/a.png", "http://localhost:5000/uploads/avatars/1/a.png"),
    ("uploads/avatars/1/a.png", "http://localhost:5000/uploads/avatars/1/a.png"),
    ("https://github.com/shadcn.png", "https://github.com/shadcn.png"),
])
def test_resolve_avatar_url(avatar, expected):
    assert resolve_avatar_url(avatar, ORIGIN) == expected


@pytest.mark.parametrize("avatar", [None, "/uploads/a.png", "a.png", "http://cdn.test/a.png"])
def test_resolve_avatar_url_is_idempotent(avatar):
    once = resolve_avatar_url(avatar, ORIGIN)
    assert resolve_avatar_url(once, ORIGIN) == once


def test_origin_of():
    assert origin_of("http://localhost:5000/api") == "http://localhost:5000"
    assert origin_of("https://api.zenyukti.in/") == "https://api.zenyukti.in"
