# ════════════════════════════════════════════════
# ▶ IMPORTS
# ════════════════════════════════════════════════

import logging
import uuid

import psycopg2

import config
from stores.activity import log_activity

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════
# ▶ QUERIES
# ════════════════════════════════════════════════

# Inactive categories are not joined, their posts show without a category
SELECT_POSTS = """
    SELECT
        p.id,
        p.title,
        p.content,
        p.category_id,
        p.display_order,
        p.is_active,
        p.created_at,
        p.updated_at,
        c.name AS category_name,
        c.slug AS category_slug,
        c.color AS category_color
    FROM posts p
    LEFT JOIN categories c ON p.category_id = c.id AND c.is_active = TRUE
"""

ORDER_POSTS = "ORDER BY p.display_order ASC NULLS LAST, p.created_at DESC"

# Listed ids take positions 1..n, every other post follows in its previous order
REORDER_POSTS = """
    WITH given AS (
        SELECT id, ord
        FROM unnest(%s::varchar[]) WITH ORDINALITY AS t(id, ord)
    ),
    rest AS (
        SELECT
            p.id,
            (SELECT COUNT(*) FROM given)
                + ROW_NUMBER() OVER (ORDER BY p.display_order ASC NULLS LAST, p.created_at DESC) AS ord
        FROM posts p
        WHERE p.id NOT IN (SELECT id FROM given)
    )
    UPDATE posts p
    SET display_order = o.ord
    FROM (
        SELECT id, ord FROM given
        UNION ALL
        SELECT id, ord FROM rest
    ) o
    WHERE p.id = o.id
"""


def _escape_like(value):
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ════════════════════════════════════════════════
# ▶ POST STORE
# ════════════════════════════════════════════════

class PostStore:
    '''
    Announcements and their display order.

    Reads return plain dict rows with an "images" list attached. Writes
    return a result dict with a "success" flag; storage errors are logged
    and reported with a generic message.
    '''

    def __init__(self, db, images, categories=None):
        self.db = db
        self.images = images
        self.categories = categories

    # ── Validation ──────────────────────────────────

    @staticmethod
    def validate_post_data(title, content):
        ''' Collect every problem with a title/content pair, empty list when valid '''
        errors = []
        title = (title or "").strip()
        content = (content or "").strip()

        if not title:
            errors.append("Title is required")
        elif len(title) > config.MAX_TITLE_LENGTH:
            errors.append(f"Title must be less than {config.MAX_TITLE_LENGTH} characters")

        if not content:
            errors.append("Content is required")
        elif len(content) > config.MAX_CONTENT_LENGTH:
            errors.append(f"Content must be less than {config.MAX_CONTENT_LENGTH:,} characters")

        return errors

    @staticmethod
    def generate_id():
        return uuid.uuid4().hex

    # ── Reads ───────────────────────────────────────

    def _with_images(self, posts):
        images = self.images.list_for_posts([post["id"] for post in posts])
        for post in posts:
            post["images"] = images.get(post["id"], [])
        return posts

    def list(self, include_inactive=False):
        with self.db.cursor() as cur:
            cur.execute(
                SELECT_POSTS + " WHERE (%s OR p.is_active) " + ORDER_POSTS,
                (include_inactive,)
            )
            posts = cur.fetchall()
        return self._with_images(posts)

    def list_by_category(self, category_slug, include_inactive=False):
        with self.db.cursor() as cur:
            cur.execute(
                SELECT_POSTS + " WHERE c.slug = %s AND (%s OR p.is_active) " + ORDER_POSTS,
                (category_slug, include_inactive)
            )
            posts = cur.fetchall()
        return self._with_images(posts)

    def get_by_id(self, post_id):
        with self.db.cursor() as cur:
            cur.execute(SELECT_POSTS + " WHERE p.id = %s", (post_id,))
            post = cur.fetchone()
        if post is None:
            return None
        post["images"] = self.images.list_for_post(post_id)
        return post

    def search(self, query, category_slug=None, include_inactive=False):
        '''
        Case-insensitive substring search over title and content.

        A blank query matches nothing. Wildcard characters in the query are
        matched literally.
        '''
        if not query or not query.strip():
            return []

        term = f"%{_escape_like(query.strip())}%"
        with self.db.cursor() as cur:
            cur.execute(
                SELECT_POSTS + """
                WHERE (p.title ILIKE %s OR p.content ILIKE %s)
                  AND (%s OR p.is_active)
                  AND (%s IS NULL OR c.slug = %s)
                """ + ORDER_POSTS,
                (term, term, include_inactive, category_slug, category_slug)
            )
            posts = cur.fetchall()
        return self._with_images(posts)

    def get_stats(self):
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT
                    COUNT(*) AS total_posts,
                    COUNT(*) FILTER (WHERE is_active) AS active_posts,
                    COUNT(*) FILTER (WHERE NOT is_active) AS inactive_posts,
                    MAX(created_at) AS latest_post_date
                FROM posts
            """)
            stats = dict(cur.fetchone())
            cur.execute("""
                SELECT
                    COUNT(*) AS total_images,
                    COUNT(DISTINCT post_id) AS posts_with_images
                FROM post_images
            """)
            stats.update(cur.fetchone())

        stats["categories"] = self.categories.counts_by_category() if self.categories else []
        return stats

    # ── Writes ──────────────────────────────────────

    def create(self, title, content, category_id=None, admin_user_id=None, images=None, captions=None):
        '''
        Validate and insert a post at the end of the display order.

        Staged images are attached afterwards, one by one; a failing image is
        reported in "image_errors" but the post stays created.
        '''
        errors = self.validate_post_data(title, content)
        if errors:
            return {"success": False, "errors": errors}

        post_id = self.generate_id()
        title = title.strip()
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    INSERT INTO posts (id, title, content, category_id, display_order, is_active, created_at, updated_at)
                    SELECT %s, %s, %s, %s, COALESCE(MAX(display_order), 0) + 1, TRUE, NOW(), NOW()
                    FROM posts
                """, (post_id, title, content.strip(), category_id))
                log_activity(cur, admin_user_id, config.ACTIVITY_CREATE, f"Created post: {title}")
        except psycopg2.Error:
            logger.exception("Error creating post")
            return {"success": False, "error": "Failed to create post"}

        logger.info("Post created", extra={"post_id": post_id, "admin_user_id": admin_user_id})
        uploaded, image_errors = self.images.attach(post_id, images, captions)
        return {
            "success": True,
            "id": post_id,
            "uploaded_images": uploaded,
            "image_errors": image_errors,
        }

    def update(self, post_id, title, content, category_id=None, admin_user_id=None, images=None, captions=None):
        ''' Overwrite title, content and category; new images are appended '''
        errors = self.validate_post_data(title, content)
        if errors:
            return {"success": False, "errors": errors}

        title = title.strip()
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    UPDATE posts
                    SET title = %s, content = %s, category_id = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING id
                """, (title, content.strip(), category_id, post_id))
                if not cur.fetchone():
                    return {"success": False, "error": "Post not found"}
                log_activity(cur, admin_user_id, config.ACTIVITY_UPDATE, f"Updated post: {title}")
        except psycopg2.Error:
            logger.exception("Error updating post", extra={"post_id": post_id})
            return {"success": False, "error": "Failed to update post"}

        uploaded, image_errors = self.images.attach(post_id, images, captions)
        return {"success": True, "uploaded_images": uploaded, "image_errors": image_errors}

    def delete(self, post_id, admin_user_id=None):
        '''
        Remove a post for good.

        Image rows go with it through the foreign key cascade, their files
        are deleted here once the row is gone.
        '''
        try:
            with self.db.cursor() as cur:
                cur.execute(
                    "SELECT id, filename, thumbnail_filename FROM post_images WHERE post_id = %s",
                    (post_id,)
                )
                images = cur.fetchall()
                cur.execute("DELETE FROM posts WHERE id = %s RETURNING title", (post_id,))
                deleted = cur.fetchone()
                if not deleted:
                    return {"success": False, "error": "Post not found"}
                log_activity(cur, admin_user_id, config.ACTIVITY_DELETE, f"Deleted post: {deleted['title']}")
        except psycopg2.Error:
            logger.exception("Error deleting post", extra={"post_id": post_id})
            return {"success": False, "error": "Failed to delete post"}

        for image in images:
            self.images.remove_files(image)
        logger.info("Post deleted", extra={"post_id": post_id, "images": len(images)})
        return {"success": True}

    def set_active(self, post_id, is_active, admin_user_id=None):
        ''' Soft-delete or restore a post '''
        action = config.ACTIVITY_ACTIVATE if is_active else config.ACTIVITY_DEACTIVATE
        try:
            with self.db.cursor() as cur:
                cur.execute(
                    "UPDATE posts SET is_active = %s, updated_at = NOW() WHERE id = %s RETURNING title",
                    (bool(is_active), post_id)
                )
                row = cur.fetchone()
                if not row:
                    return {"success": False, "error": "Post not found"}
                log_activity(cur, admin_user_id, action, f"{action.capitalize()}d post: {row['title']}")
        except psycopg2.Error:
            logger.exception("Error changing post status", extra={"post_id": post_id})
            return {"success": False, "error": "Failed to update post"}
        return {"success": True, "is_active": bool(is_active)}

    def reorder(self, ordered_ids, admin_user_id=None):
        '''
        Rewrite display_order so the given posts come first, in the given order.

        Posts left out of the list keep their relative order behind them.
        Repeated ids keep their first position.
        '''
        if not isinstance(ordered_ids, (list, tuple)) or len(ordered_ids) == 0:
            return {"success": False, "error": "Invalid post IDs array"}

        ids = list(dict.fromkeys(str(post_id) for post_id in ordered_ids))
        try:
            with self.db.cursor() as cur:
                cur.execute(REORDER_POSTS, (ids,))
                log_activity(cur, admin_user_id, config.ACTIVITY_REORDER, f"Reordered {len(ids)} posts")
        except psycopg2.Error:
            logger.exception("Error reordering posts")
            return {"success": False, "error": "Failed to reorder posts"}
        return {"success": True}
