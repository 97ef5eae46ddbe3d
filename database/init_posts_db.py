# This script creates the PostgreSQL tables for posts, categories and images
# Safe to run again, existing tables and categories are left alone

from dotenv import load_dotenv

from database.db_connection import get_db_connection


# ════════════════════════════════════════════════
# ▶ SCHEMA
# ════════════════════════════════════════════════

POSTS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS categories (
        id SERIAL PRIMARY KEY,
        name VARCHAR(100) NOT NULL UNIQUE,
        slug VARCHAR(100) NOT NULL UNIQUE,
        description VARCHAR(500),
        color VARCHAR(7) NOT NULL DEFAULT '#007bff',
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS posts (
        id VARCHAR(50) PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        content TEXT NOT NULL,
        category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
        display_order INTEGER,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS ix_posts_display_order ON posts (display_order, created_at DESC);

    CREATE TABLE IF NOT EXISTS post_images (
        id VARCHAR(50) PRIMARY KEY,
        post_id VARCHAR(50) NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
        filename VARCHAR(255) NOT NULL,
        thumbnail_filename VARCHAR(255) NOT NULL,
        public_path VARCHAR(500) NOT NULL,
        thumbnail_path VARCHAR(500) NOT NULL,
        caption VARCHAR(500),
        created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
    );

    CREATE INDEX IF NOT EXISTS ix_post_images_post_id ON post_images (post_id);
    CREATE INDEX IF NOT EXISTS ix_post_images_created_at ON post_images (created_at);

    CREATE TABLE IF NOT EXISTS activity_log (
        id SERIAL PRIMARY KEY,
        admin_user_id INTEGER,
        action VARCHAR(20) NOT NULL,
        details TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
"""

DEFAULT_CATEGORIES = [
    ("General", "general", "General announcements and updates", "#6c757d", 1),
    ("Academic", "academic", "Academic news and educational updates", "#28a745", 2),
    ("Events", "events", "School events and activities", "#fd7e14", 3),
    ("Sports", "sports", "Sports news and athletic achievements", "#dc3545", 4),
    ("Administration", "administration", "Administrative notices and policies", "#6f42c1", 5),
]


def create_post_tables(conn):
    with conn.cursor() as cur:
        cur.execute(POSTS_SCHEMA)
    conn.commit()


def insert_default_categories(conn):
    ''' Returns the number of categories that did not exist yet '''
    created = 0
    with conn.cursor() as cur:
        for name, slug, description, color, display_order in DEFAULT_CATEGORIES:
            cur.execute("""
                INSERT INTO categories (name, slug, description, color, display_order)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (slug) DO NOTHING
            """, (name, slug, description, color, display_order))
            created += cur.rowcount
    conn.commit()
    return created


if __name__ == "__main__":
    load_dotenv()
    conn = get_db_connection()
    try:
        create_post_tables(conn)
        created = insert_default_categories(conn)
    finally:
        conn.close()
    print("Database initialized with 'categories', 'posts', 'post_images' and 'activity_log' tables.")
    print(f"{created} default categories created.")
