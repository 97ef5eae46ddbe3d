"""Tests for the post store: validation, writes, ordering and search."""

from __future__ import annotations

from unittest.mock import MagicMock

import psycopg2
import pytest

from stores.post_store import REORDER_POSTS, PostStore


@pytest.fixture
def images():
    images = MagicMock(name="image_store")
    images.attach.return_value = ([], [])
    images.list_for_posts.side_effect = lambda ids: {post_id: [] for post_id in ids}
    return images


@pytest.fixture
def categories():
    categories = MagicMock(name="category_store")
    categories.counts_by_category.return_value = [
        {"id": 1, "name": "General", "slug": "general", "color": "#6c757d", "post_count": 2},
        {"id": 2, "name": "Sports", "slug": "sports", "color": "#dc3545", "post_count": 0},
    ]
    return categories


@pytest.fixture
def store(fake_db, images, categories):
    return PostStore(fake_db, images, categories)


class TestValidation:
    def test_valid_post_has_no_errors(self):
        assert PostStore.validate_post_data("Sports day", "Bring your trainers.") == []

    def test_both_fields_missing_reports_both(self):
        errors = PostStore.validate_post_data("", "")
        assert errors == ["Title is required", "Content is required"]

    def test_whitespace_only_counts_as_empty(self):
        errors = PostStore.validate_post_data("   ", "\n\t ")
        assert len(errors) == 2

    def test_none_values_are_handled(self):
        assert len(PostStore.validate_post_data(None, None)) == 2

    def test_limits_are_inclusive(self):
        assert PostStore.validate_post_data("t" * 255, "c" * 10000) == []

    def test_too_long_title_and_content(self):
        errors = PostStore.validate_post_data("t" * 256, "c" * 10001)
        assert errors == [
            "Title must be less than 255 characters",
            "Content must be less than 10,000 characters",
        ]

    def test_length_is_measured_after_trimming(self):
        assert PostStore.validate_post_data("  " + "t" * 255 + "  ", "ok") == []


class TestCreate:
    def test_invalid_post_is_not_stored(self, store, fake_db, images):
        result = store.create("", "x" * 10001)

        assert result["success"] is False
        assert result["errors"] == ["Title is required", "Content must be less than 10,000 characters"]
        fake_db.cur.execute.assert_not_called()
        images.attach.assert_not_called()

    def test_new_post_is_appended_to_display_order(self, store, fake_db):
        result = store.create("  Open evening  ", "  Doors open at 6pm.  ", category_id=3)

        assert result["success"] is True
        assert len(result["id"]) == 32
        sql = fake_db.executed_sql[0]
        assert "COALESCE(MAX(display_order), 0) + 1" in sql
        assert fake_db.executed_params[0] == (result["id"], "Open evening", "Doors open at 6pm.", 3)

    def test_ids_are_unique(self, store):
        ids = {store.create("Title", "Content")["id"] for _ in range(50)}
        assert len(ids) == 50

    def test_activity_is_logged_for_admin(self, store, fake_db):
        store.create("Title", "Content", admin_user_id=7)

        assert len(fake_db.executed_sql) == 2
        assert "activity_log" in fake_db.executed_sql[1]
        assert fake_db.executed_params[1] == (7, "CREATE", "Created post: Title")

    def test_no_activity_without_admin(self, store, fake_db):
        store.create("Title", "Content")
        assert not any("activity_log" in sql for sql in fake_db.executed_sql)

    def test_images_are_attached_after_insert(self, store, images):
        staged = [MagicMock(), MagicMock()]
        images.attach.return_value = ([{"id": "img1"}], ["broken.png: Failed to process image"])

        result = store.create("Title", "Content", images=staged, captions=["first"])

        images.attach.assert_called_once_with(result["id"], staged, ["first"])
        assert result["success"] is True
        assert result["uploaded_images"] == [{"id": "img1"}]
        assert result["image_errors"] == ["broken.png: Failed to process image"]

    def test_storage_error_is_reported_generically(self, store, fake_db, images):
        fake_db.cur.execute.side_effect = psycopg2.OperationalError("connection refused on 10.0.0.5")

        result = store.create("Title", "Content")

        assert result == {"success": False, "error": "Failed to create post"}
        assert fake_db.rollbacks == 1
        images.attach.assert_not_called()


class TestUpdate:
    def test_unknown_post(self, store, fake_db, images):
        fake_db.cur.fetchone.return_value = None

        result = store.update("missing", "Title", "Content")

        assert result == {"success": False, "error": "Post not found"}
        images.attach.assert_not_called()

    def test_update_keeps_existing_images(self, store, fake_db, images):
        fake_db.cur.fetchone.return_value = {"id": "p1"}
        staged = [MagicMock()]

        result = store.update("p1", "New title", "New content", category_id=None, images=staged)

        assert result["success"] is True
        assert not any("DELETE" in sql for sql in fake_db.executed_sql)
        images.attach.assert_called_once_with("p1", staged, None)
        assert fake_db.executed_params[0] == ("New title", "New content", None, "p1")

    def test_validation_runs_before_update(self, store, fake_db):
        result = store.update("p1", "", "")
        assert result["errors"] == ["Title is required", "Content is required"]
        fake_db.cur.execute.assert_not_called()


class TestDelete:
    def test_delete_removes_image_files(self, store, fake_db, images):
        rows = [
            {"id": "i1", "filename": "a.jpg", "thumbnail_filename": "thumb-a.jpg"},
            {"id": "i2", "filename": "b.jpg", "thumbnail_filename": "thumb-b.jpg"},
        ]
        fake_db.cur.fetchall.return_value = rows
        fake_db.cur.fetchone.return_value = {"title": "Old news"}

        result = store.delete("p1", admin_user_id=1)

        assert result == {"success": True}
        assert [c.args[0] for c in images.remove_files.call_args_list] == rows
        assert any(sql.startswith("DELETE FROM posts") for sql in fake_db.executed_sql)

    def test_delete_unknown_post(self, store, fake_db, images):
        fake_db.cur.fetchall.return_value = []
        fake_db.cur.fetchone.return_value = None

        assert store.delete("missing") == {"success": False, "error": "Post not found"}
        images.remove_files.assert_not_called()

    def test_files_kept_when_delete_fails(self, store, fake_db, images):
        fake_db.cur.execute.side_effect = psycopg2.DatabaseError("deadlock")

        assert store.delete("p1") == {"success": False, "error": "Failed to delete post"}
        images.remove_files.assert_not_called()


class TestSetActive:
    def test_hide_post(self, store, fake_db):
        fake_db.cur.fetchone.return_value = {"title": "Trip"}

        result = store.set_active("p1", False, admin_user_id=2)

        assert result == {"success": True, "is_active": False}
        assert fake_db.executed_params[0] == (False, "p1")
        assert fake_db.executed_params[1] == (2, "DEACTIVATE", "Deactivated post: Trip")

    def test_unknown_post(self, store, fake_db):
        fake_db.cur.fetchone.return_value = None
        assert store.set_active("missing", True)["error"] == "Post not found"


class TestReorder:
    @pytest.mark.parametrize("order", [[], None, "a,b,c", {"a": 1}])
    def test_invalid_input(self, store, fake_db, order):
        assert store.reorder(order) == {"success": False, "error": "Invalid post IDs array"}
        fake_db.cur.execute.assert_not_called()

    def test_single_statement_with_ids_in_order(self, store, fake_db):
        assert store.reorder(["c", "a", "b"]) == {"success": True}

        assert fake_db.executed_sql == [REORDER_POSTS]
        assert fake_db.executed_params == [(["c", "a", "b"],)]

    def test_duplicates_keep_first_position(self, store, fake_db):
        store.reorder(["b", "a", "b", "c", "a"])
        assert fake_db.executed_params[0] == (["b", "a", "c"],)

    def test_reorder_logged_for_admin(self, store, fake_db):
        store.reorder(["a"], admin_user_id=4)
        assert fake_db.executed_params[1] == (4, "REORDER", "Reordered 1 posts")

    def test_storage_error(self, store, fake_db):
        fake_db.cur.execute.side_effect = psycopg2.OperationalError("gone")
        assert store.reorder(["a"]) == {"success": False, "error": "Failed to reorder posts"}


class TestReads:
    def test_list_attaches_images(self, store, fake_db, images):
        image = {"id": "i1", "post_id": "a"}
        fake_db.cur.fetchall.return_value = [{"id": "a"}, {"id": "b"}]
        images.list_for_posts.side_effect = None
        images.list_for_posts.return_value = {"a": [image], "b": []}

        posts = store.list()

        assert posts == [{"id": "a", "images": [image]}, {"id": "b", "images": []}]
        images.list_for_posts.assert_called_once_with(["a", "b"])

    def test_list_passes_include_inactive(self, store, fake_db):
        fake_db.cur.fetchall.return_value = []
        store.list(include_inactive=True)

        sql = fake_db.executed_sql[0]
        assert "LEFT JOIN categories" in sql
        assert "ORDER BY p.display_order ASC NULLS LAST, p.created_at DESC" in sql
        assert fake_db.executed_params[0] == (True,)

    def test_list_by_category(self, store, fake_db):
        fake_db.cur.fetchall.return_value = []
        store.list_by_category("sports")
        assert fake_db.executed_params[0] == ("sports", False)

    def test_get_by_id_missing(self, store, fake_db, images):
        fake_db.cur.fetchone.return_value = None
        assert store.get_by_id("nope") is None
        images.list_for_post.assert_not_called()

    def test_get_by_id_with_images(self, store, fake_db, images):
        fake_db.cur.fetchone.return_value = {"id": "p1", "title": "T"}
        images.list_for_post.return_value = [{"id": "i1"}]

        post = store.get_by_id("p1")

        assert post["images"] == [{"id": "i1"}]

    def test_get_stats_includes_image_and_category_breakdown(self, store, fake_db, categories):
        fake_db.cur.fetchone.side_effect = [
            {"total_posts": 3, "active_posts": 2, "inactive_posts": 1, "latest_post_date": None},
            {"total_images": 4, "posts_with_images": 2},
        ]

        stats = store.get_stats()

        assert stats["total_posts"] == 3
        assert stats["inactive_posts"] == 1
        assert stats["total_images"] == 4
        assert stats["posts_with_images"] == 2
        assert stats["categories"] == categories.counts_by_category.return_value


class TestSearch:
    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_blank_query_returns_nothing(self, store, fake_db, query):
        assert store.search(query) == []
        fake_db.cur.execute.assert_not_called()

    def test_matches_title_or_content_case_insensitively(self, store, fake_db):
        fake_db.cur.fetchall.return_value = [{"id": "a"}]

        posts = store.search("  Trip ")

        sql = fake_db.executed_sql[0]
        assert "p.title ILIKE %s OR p.content ILIKE %s" in sql
        assert fake_db.executed_params[0] == ("%Trip%", "%Trip%", False, None, None)
        assert [p["id"] for p in posts] == ["a"]

    def test_wildcards_are_literal(self, store, fake_db):
        fake_db.cur.fetchall.return_value = []
        store.search("50%_off")
        assert fake_db.executed_params[0][0] == "%50\\%\\_off%"

    def test_category_and_inactive_filters(self, store, fake_db):
        fake_db.cur.fetchall.return_value = []
        store.search("exam", category_slug="academic", include_inactive=True)
        assert fake_db.executed_params[0] == ("%exam%", "%exam%", True, "academic", "academic")
