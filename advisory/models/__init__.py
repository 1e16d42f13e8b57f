"""
Advisory Request Workflow
SQLAlchemy extension and model package.

All model modules import ``db`` from here:

    from advisory.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
