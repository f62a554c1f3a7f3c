"""Database configuration and initialization."""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if not database_uri.startswith('sqlite'):
        engine_options.update(pool_size=10, max_overflow=20)

    engine = create_engine(database_uri, **engine_options)

    # SQLite only enforces ON DELETE CASCADE with the pragma enabled
    if engine.dialect.name == 'sqlite':
        event.listen(engine, 'connect', _enable_sqlite_foreign_keys)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models (development and tests)."""
    import opsconsole.models  # noqa: F401  (register mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table known to the models."""
    import opsconsole.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
