import os
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

db = SQLAlchemy()

DEFAULT_DATABASE_URL = "sqlite:///boq.db"


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection"""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def initialize_db(app):
    """
    Initialize SQLAlchemy with app config.

    DATABASE_URL selects the backend. Connection pool options are only
    applied to server databases (PostgreSQL/MySQL); SQLite uses the
    defaults Flask-SQLAlchemy picks for it.
    """
    app.config.setdefault('SQLALCHEMY_DATABASE_URI', os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL))
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    database_url = app.config['SQLALCHEMY_DATABASE_URI']
    environment = os.getenv("ENVIRONMENT", "development")

    if not database_url.startswith("sqlite"):
        pool_config = {
            "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 5)),
            "pool_timeout": 30,        # Wait 30 seconds before raising error
            "pool_recycle": 3600,      # Recycle connections after 1 hour
            "pool_pre_ping": True,     # Test connections before using
            "echo_pool": environment == "development",
        }
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', pool_config)

    db.init_app(app)
