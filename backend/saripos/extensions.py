# Overview: Flask extension instances for the database session and migrations.
# The engine behind `db` is configured as a pool of one (see Config); the
# ConnectionManager in services/connection_service.py owns its lifecycle.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
