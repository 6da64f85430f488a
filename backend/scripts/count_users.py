from settings import settings
import psycopg

with psycopg.connect(settings.db_url) as conn:
    with conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM users")
        print('users rows:', cur.fetchone()[0])
