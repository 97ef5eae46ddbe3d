# Run once to initialize the database for authentication
# Running it again leaves existing admins untouched

from dotenv import load_dotenv

from database.db_connection import get_db_connection

ADMIN_USERS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS admin_users (
        id SERIAL PRIMARY KEY,
        username VARCHAR(50) UNIQUE NOT NULL,
        password_hash VARCHAR(255) NOT NULL,
        email VARCHAR(100),
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_login TIMESTAMPTZ
    );
"""


def create_admin_users_table(conn):
    with conn.cursor() as cur:
        cur.execute(ADMIN_USERS_SCHEMA)
    conn.commit()


if __name__ == "__main__":
    load_dotenv()
    conn = get_db_connection()
    try:
        create_admin_users_table(conn)
    finally:
        conn.close()
    print("✅ Admin users table created successfully.")
