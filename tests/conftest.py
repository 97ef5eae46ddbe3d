"""Test fixtures for stores and routes."""

from __future__ import annotations

import io
import os
import tempfile
from contextlib import contextmanager
from unittest.mock import MagicMock

# Point configuration at throwaway locations *before* importing the app, so
# importing it never touches the real upload folders.
_UPLOAD_ROOT = tempfile.mkdtemp(prefix="school-website-tests-")
os.environ.setdefault("UPLOAD_TEMP_DIR", os.path.join(_UPLOAD_ROOT, "tmp"))
os.environ.setdefault("UPLOAD_PUBLIC_DIR", os.path.join(_UPLOAD_ROOT, "public"))
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from PIL import Image  # noqa: E402
from werkzeug.datastructures import FileStorage  # noqa: E402

from app import Stores  # noqa: E402
from app import app as flask_app  # noqa: E402
from stores.auth_store import AdminUser, AuthStore  # noqa: E402
from stores.category_store import CategoryStore  # noqa: E402
from stores.image_store import ImageStore  # noqa: E402
from stores.post_store import PostStore  # noqa: E402


class FakeDatabase:
    """Stands in for database.db_connection.Database.

    Every unit of work gets the same MagicMock cursor, so tests can script
    fetchone/fetchall results and inspect the executed SQL.
    """

    def __init__(self):
        self.cur = MagicMock(name="cursor")
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def cursor(self):
        try:
            yield self.cur
        except Exception:
            self.rollbacks += 1
            raise
        self.commits += 1

    @property
    def executed_sql(self):
        return [c.args[0] for c in self.cur.execute.call_args_list]

    @property
    def executed_params(self):
        return [c.args[1] if len(c.args) > 1 else None for c in self.cur.execute.call_args_list]


def make_image_bytes(fmt="PNG", size=(1600, 1000), color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, fmt)
    buf.seek(0)
    return buf


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def image_store(fake_db, tmp_path):
    return ImageStore(
        fake_db,
        temp_dir=str(tmp_path / "tmp"),
        public_dir=str(tmp_path / "public"),
    )


@pytest.fixture
def make_upload():
    """Build a werkzeug FileStorage like the ones found in request.files."""

    def _make(filename="photo.png", mimetype="image/png", fmt="PNG", size=(1600, 1000), data=None):
        stream = io.BytesIO(data) if data is not None else make_image_bytes(fmt, size)
        return FileStorage(stream=stream, filename=filename, content_type=mimetype)

    return _make


@pytest.fixture
def mock_stores(tmp_path):
    stores = Stores(
        posts=MagicMock(spec=PostStore),
        categories=MagicMock(spec=CategoryStore),
        images=MagicMock(spec=ImageStore),
        auth=MagicMock(spec=AuthStore),
    )
    stores.images.public_dir = str(tmp_path)
    stores.categories.counts_by_category.return_value = []
    stores.categories.list_active.return_value = []
    stores.images.accept.return_value = []
    stores.auth.get_user.return_value = None
    return stores


@pytest.fixture
def client(mock_stores):
    original = flask_app.extensions["stores"]
    flask_app.config.update(TESTING=True)
    flask_app.extensions["stores"] = mock_stores
    with flask_app.test_client() as test_client:
        yield test_client
    flask_app.extensions["stores"] = original


@pytest.fixture
def admin_client(client, mock_stores):
    """Client whose session is already authenticated as admin #1."""
    mock_stores.auth.get_user.return_value = AdminUser(1, "admin")
    with client.session_transaction() as sess:
        sess["_user_id"] = "1"
        sess["_fresh"] = True
    return client


@pytest.fixture
def flashes(client):
    """Messages flashed so far in the test client session."""

    def _flashes():
        with client.session_transaction() as sess:
            return [message for _, message in sess.get("_flashes", [])]

    return _flashes
