"""CLI script to backfill client metadata rows from existing projects.
Usage: python scripts/sync_clients.py
"""
import sys
import pathlib
# Ensure `backend/` is on sys.path so `protoshare` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from protoshare.database import engine, create_db_and_tables
from protoshare import services, repositories


def main():
    """Ensure every client label used by a project has a `Client` row.

    Prints the synced labels and the full client table for a quick CLI
    feedback loop.
    """
    create_db_and_tables()
    with Session(engine) as session:
        labels = services.ClientService(session).sync()
        print(f'Found {len(labels)} unique client labels')
        for label in labels:
            print(f'  synced: {label}')
        print('Clients in database:')
        for c in repositories.ClientRepository(session).list_all():
            suffix = ' (has description)' if c.description else ''
            print(f'  - {c.client_label}{suffix}')


if __name__ == '__main__':
    main()
