# Production entry point, e.g. `gunicorn wsgi:app`
import atexit

from app import app, db

db.open()
atexit.register(db.close)
