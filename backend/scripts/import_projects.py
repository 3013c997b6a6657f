"""CLI script to import projects from the legacy JSON data files.
Usage: python scripts/import_projects.py [--data-dir DIR] [--replace]
"""
import sys
import json
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `protoshare` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from protoshare.database import engine, create_db_and_tables
from protoshare import services


def _load(path: pathlib.Path) -> list:
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding='utf-8'))
    if not isinstance(data, list):
        raise ValueError(f'{path} must contain a JSON list')
    return data


def main(data_dir: pathlib.Path, replace: bool = False):
    """Import `projects.json` (active) and `deleted-projects.json` from `data_dir`.

    With `replace`, every existing project is permanently removed first.
    """
    active = _load(data_dir / 'projects.json')
    deleted = _load(data_dir / 'deleted-projects.json')
    print(f'Found {len(active)} active projects and {len(deleted)} deleted projects')
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.ImportService(session)
        for label, records, is_deleted, wipe in (('active', active, False, replace), ('deleted', deleted, True, False)):
            result = svc.import_records(records, deleted=is_deleted, replace=wipe)
            print(f"Imported {label}: created {result['created']}, skipped {result['skipped']}, errors {len(result['errors'])}")
            for err in result['errors']:
                print(f"  item {err['index']}: {err['error']}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--data-dir', type=pathlib.Path, default=ROOT.parent / 'data', help='Folder holding the legacy JSON files')
    parser.add_argument('--replace', action='store_true', help='Remove existing projects before importing')
    args = parser.parse_args()
    main(args.data_dir, replace=args.replace)
