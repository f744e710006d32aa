"""Import the INVIMA CUM catalog from the open-data CSV.

Usage:
    cd backend
    python scripts/import_invima.py path/to/CUM_VIGENTES.csv [--clear]
"""

import argparse
import logging
from pathlib import Path

from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.invima import InvimaDrug
from app.services.invima_service import import_invima_csv

logger = logging.getLogger("import_invima")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import the INVIMA CUM catalog")
    parser.add_argument("csv_path", type=Path, help="CUM CSV exported from datos.gov.co")
    parser.add_argument("--clear", action="store_true", help="Delete the current catalog first")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not args.csv_path.exists():
        parser.error(f"File not found: {args.csv_path}")

    Base.metadata.create_all(bind=engine, tables=[InvimaDrug.__table__])
    db = SessionLocal()
    try:
        with args.csv_path.open(encoding="utf-8-sig", newline="") as handle:
            result = import_invima_csv(db, handle, clear=args.clear)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    logger.info(f"Imported {result.imported} drugs, skipped {result.skipped}")


if __name__ == "__main__":
    main()
