#!/usr/bin/env python3
"""Create the LashUp tables in the configured database."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lashup import create_app
from lashup.extensions import db


def init_database():
    app = create_app()
    with app.app_context():
        db.create_all()
        tables = ", ".join(sorted(db.metadata.tables))
        print(f"Tables ready on {app.config['SQLALCHEMY_DATABASE_URI']}: {tables}")


if __name__ == "__main__":
    init_database()
