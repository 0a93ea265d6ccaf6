"""
Create Tables Script
Creates the labs table and its index if they do not exist yet.
Run with: python -m script_labs.scripts.create_tables
"""

import logging
import sys

from script_labs.database.postgres import PostgresClient
from script_labs.modules.labs.models import SCHEMA_STATEMENTS, TABLE_NAME

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_tables(database) -> int:
    """Apply every schema statement; returns how many ran"""
    for statement in SCHEMA_STATEMENTS:
        database.execute(statement)
    logger.info("Table %s is ready", TABLE_NAME)
    return len(SCHEMA_STATEMENTS)


def main():
    database = PostgresClient.get_database()
    try:
        create_tables(database)
    except Exception as e:
        logger.error("Error creating tables: %s", e)
        sys.exit(1)
    finally:
        PostgresClient.close()


if __name__ == "__main__":
    main()
