"""
WSGI entry point and Flask-Migrate / Alembic target.

Usage:
    flask --app wsgi run
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from dotenv import load_dotenv

load_dotenv()

from storeops import create_app  # noqa: E402

app = create_app()
