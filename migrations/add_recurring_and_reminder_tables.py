"""
Add recurring schedule and reminder tables

Migration to add:
- recurring_schedules, recurring_schedule_items, recurring_job_history
  (with the unique (schedule_id, scheduled_for) occurrence constraint)
- notification_settings, notification_log
- appointments.reminder_sent_at
- jobs.recurring_schedule_id

Run with: python migrations/add_recurring_and_reminder_tables.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text

from bizops import models, models_notification, models_recurring  # noqa: F401
from bizops.database import Base, engine

NEW_TABLES = [
    "recurring_schedules",
    "recurring_schedule_items",
    "recurring_job_history",
    "notification_settings",
    "notification_log",
]

NEW_COLUMNS = {
    "appointments": {"reminder_sent_at": "TIMESTAMP"},
    "jobs": {"recurring_schedule_id": "INTEGER REFERENCES recurring_schedules(id)"},
}


def upgrade():
    """Create new tables and columns if they do not exist yet"""
    existing_tables = set(inspect(engine).get_table_names())

    tables = [Base.metadata.tables[name] for name in NEW_TABLES if name not in existing_tables]
    if tables:
        Base.metadata.create_all(bind=engine, tables=tables, checkfirst=True)
        for table in tables:
            print(f"✅ Created table {table.name}")
    else:
        print("ℹ️  Recurring/notification tables already exist")

    inspector = inspect(engine)
    with engine.connect() as conn:
        for table_name, columns in NEW_COLUMNS.items():
            if table_name not in inspector.get_table_names():
                print(f"ℹ️  Table {table_name} does not exist yet, skipping its columns")
                continue

            existing_columns = {column["name"] for column in inspector.get_columns(table_name)}
            for column_name, ddl in columns.items():
                if column_name in existing_columns:
                    print(f"ℹ️  {table_name}.{column_name} column already exists")
                    continue
                conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {ddl}"))
                print(f"✅ Added {table_name}.{column_name} column")

        conn.commit()
    print("\n✅ Migration completed successfully!")


def downgrade():
    """Remove the added columns and tables"""
    with engine.connect() as conn:
        conn.execute(text("ALTER TABLE appointments DROP COLUMN IF EXISTS reminder_sent_at"))
        conn.execute(text("ALTER TABLE jobs DROP COLUMN IF EXISTS recurring_schedule_id"))
        for name in reversed(NEW_TABLES):
            conn.execute(text(f"DROP TABLE IF EXISTS {name}"))
        conn.commit()
        print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage recurring schedule and reminder tables migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
