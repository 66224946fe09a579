# extensions.py - shared Flask extensions
# Single SQLAlchemy instance for the upload registry; models and the app import it from here.
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

__all__ = ["db"]
