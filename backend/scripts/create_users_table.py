from settings import settings
import psycopg

# PRIMARY KEY on id is what rejects concurrent duplicate inserts.
DDL = '''
CREATE TABLE IF NOT EXISTS users (
    id BIGINT PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    birthday TIMESTAMP WITH TIME ZONE NOT NULL
);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=5) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
