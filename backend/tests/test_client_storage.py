import json
import stat

import pytest

from zenyukti.client.storage import FileTokenStore, MemoryTokenStore, TOKEN_KEY, USER_KEY

USER = {"id": "1", "email": "ada@x.com", "name": "Ada"}


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryTokenStore()
    return FileTokenStore(tmp_path / "session" / "auth.json")


def test_empty_store_loads_nothing(store):
    assert store.load() == (None, None)


def test_token_and_user_are_saved_and_cleared_together(store):
    store.save("tok", USER)
    assert store.load() == ("tok", USER)

    store.clear()
    assert store.load() == (None, None)
    # Clearing twice is harmless
    store.clear()


def test_file_store_layout_and_permissions(tmp_path):
    path = tmp_path / "auth.json"
    FileTokenStore(path).save("tok", USER)

    assert json.loads(path.read_text()) == {TOKEN_KEY: "tok", USER_KEY: USER}
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    # No temp files left behind
    assert [p.name for p in tmp_path.iterdir()] == ["auth.json"]


def test_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "auth.json"
    path.write_text("{not json")

    assert FileTokenStore(path).load() == (None, None)
