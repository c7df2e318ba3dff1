#!/usr/bin/env python3
"""Drop and recreate the agent scanner tables (agents, scan_history)."""

import argparse
import sys

from app.adapters.sql_agent_store import SqlAgentStore
from app.services import scan_config


def migrate_database(keep_data: bool = False) -> None:
    """Recreate tables with the current schema. Existing rows are lost unless keep_data is set."""
    database_url = scan_config.database_url()
    if not database_url:
        print("ERROR: AGENTS_DATABASE_URL / DATABASE_URL environment variable not set")
        sys.exit(1)

    print(f"Connecting to database ({scan_config.flow_network()})...")
    store = SqlAgentStore(database_url)
    try:
        if not keep_data:
            print("Dropping agent tables...")
            store.drop_schema()
        print("Creating tables with current schema...")
        store.ensure_schema()
    finally:
        store.dispose()

    print("✓ Database migration complete!")
    print("  - agents: keyed by current_record_id, superseded_by for absorbed tails")
    print("  - scan_history: scan_type and created/updated/deactivated counts")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--keep-data", action="store_true", help="Only create missing tables")
    migrate_database(keep_data=parser.parse_args().keep_data)
