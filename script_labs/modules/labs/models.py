# Postgres table: labs
# Rows are read and written with plain parameterized SQL in service.py

"""
Table structure:
- id: serial (primary key)
- title: varchar(255) (not null)
- description: varchar(1000) (not null)
- user_id: text (not null) - identity provider user id of the owner
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now(), refreshed on every update)
- unique constraint on (title, description, user_id)
- index on (user_id, created_at desc)
"""

TABLE_NAME = "labs"

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000

CREATE_LABS_TABLE = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id SERIAL PRIMARY KEY,
    title VARCHAR({TITLE_MAX_LENGTH}) NOT NULL,
    description VARCHAR({DESCRIPTION_MAX_LENGTH}) NOT NULL,
    user_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT labs_title_description_user_key UNIQUE (title, description, user_id)
)
"""

CREATE_LABS_USER_INDEX = f"""
CREATE INDEX IF NOT EXISTS labs_user_created_idx
    ON {TABLE_NAME} (user_id, created_at DESC)
"""

SCHEMA_STATEMENTS = (CREATE_LABS_TABLE, CREATE_LABS_USER_INDEX)
