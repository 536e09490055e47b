"""
Sigma Business Automation
SQLAlchemy models.

The `db` extension object lives here so every model module and service can
import it without touching the application factory.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
