#!/usr/bin/env python3
"""
Database management script for deployment.
Run this during the build/deployment pipeline to create tables and seed
reference data.
"""
import os
import sys

# Add current directory to path so we can import ratings_api
sys.path.append(os.getcwd())

from ratings_api.app import create_app
from ratings_api.constants import REFERENCE_TITLES
from ratings_api.models import db, Title


def seed_titles() -> int:
    """Insert missing reference titles. Returns how many were added."""
    added = 0
    for code, name in REFERENCE_TITLES:
        if not db.session.get(Title, code):
            db.session.add(Title(code=code, name=name))
            added += 1
    db.session.commit()
    return added


def deploy():
    """Run deployment tasks."""
    print("Preparing database...")
    app = create_app(os.getenv('FLASK_ENV', 'production'))
    with app.app_context():
        try:
            db.create_all()
            added = seed_titles()
            print(f"✓ Tables ready, {added} titles seeded.")
        except Exception as e:
            db.session.rollback()
            print(f"Error preparing database: {e}")
            sys.exit(1)


if __name__ == '__main__':
    deploy()
