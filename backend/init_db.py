#!/usr/bin/env python3
"""
Initialize SQLite database for the Process Modeler backend
Creates the database file and runs the schema
"""
import sqlite3
import os
import sys

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")


def load_schema() -> str:
    """Read schema.sql. Every statement is idempotent (IF NOT EXISTS)."""
    with open(SCHEMA_PATH, 'r') as f:
        return f.read()


def init_database(db_path="process_modeler.db", force=False):
    """Initialize the SQLite database"""

    # Make path absolute relative to this script
    if not os.path.isabs(db_path):
        script_dir = os.path.dirname(__file__)
        db_path = os.path.join(script_dir, db_path)

    print(f"Initializing database at: {db_path}")

    if os.path.exists(db_path) and not force:
        response = input(f"Database file '{db_path}' already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("Aborted.")
            return False
        os.remove(db_path)
        print("Existing database removed.")

    if not os.path.exists(SCHEMA_PATH):
        print(f"Error: schema.sql not found at {SCHEMA_PATH}")
        return False

    try:
        conn = sqlite3.connect(db_path)
        cursor = conn.cursor()

        cursor.executescript(load_schema())
        conn.commit()

        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = cursor.fetchall()

        print(f"\n✓ Database initialized successfully!")
        print(f"✓ Created {len(tables)} tables:")
        for table in tables:
            print(f"  - {table[0]}")

        conn.close()
        return True

    except sqlite3.Error as e:
        print(f"\n✗ Error initializing database: {e}")
        return False


if __name__ == "__main__":
    # Get database path from command line or use default
    args = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    db_path = args[0] if args else "process_modeler.db"
    force = "--force" in sys.argv

    success = init_database(db_path, force=force)
    sys.exit(0 if success else 1)
