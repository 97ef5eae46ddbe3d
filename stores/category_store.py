import logging

import psycopg2

logger = logging.getLogger(__name__)


class CategoryStore:
    ''' Post categories shown in the public navigation '''

    def __init__(self, db):
        self.db = db

    def list_active(self):
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT id, name, slug, description, color, display_order, is_active
                FROM categories
                WHERE is_active = %s
                ORDER BY display_order, name
            """, (True,))
            return cur.fetchall()

    def get_by_slug(self, slug):
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT id, name, slug, description, color, display_order, is_active
                FROM categories
                WHERE slug = %s AND is_active = %s
            """, (slug, True))
            return cur.fetchone()

    def counts_by_category(self):
        '''
        Number of active posts per active category.

        Categories without posts are included with a count of zero.
        '''
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT
                    c.id,
                    c.name,
                    c.slug,
                    c.color,
                    COUNT(p.id) AS post_count
                FROM categories c
                LEFT JOIN posts p ON p.category_id = c.id AND p.is_active = %s
                WHERE c.is_active = %s
                GROUP BY c.id, c.name, c.slug, c.color, c.display_order
                ORDER BY c.display_order, c.name
            """, (True, True))
            return cur.fetchall()

    def deactivate(self, category_id):
        ''' Hide a category and detach it from every post that references it '''
        try:
            with self.db.cursor() as cur:
                cur.execute(
                    "UPDATE categories SET is_active = %s, updated_at = NOW() WHERE id = %s RETURNING id",
                    (False, category_id)
                )
                if not cur.fetchone():
                    return {"success": False, "error": "Category not found"}
                cur.execute(
                    "UPDATE posts SET category_id = NULL WHERE category_id = %s",
                    (category_id,)
                )
                detached = cur.rowcount
        except psycopg2.Error:
            logger.exception("Error deactivating category", extra={"category_id": category_id})
            return {"success": False, "error": "Failed to deactivate category"}

        logger.info("Category deactivated", extra={"category_id": category_id, "detached_posts": detached})
        return {"success": True, "detached_posts": detached}
