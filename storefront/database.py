"""Database configuration and initialization."""
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _build_engine(database_uri: str, echo: bool = False):
    """Create the engine, with a pool suited to the backend."""
    if database_uri.startswith('sqlite'):
        # In-memory SQLite must share a single connection across threads
        sqlite_engine = create_engine(
            database_uri,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

        @event.listens_for(sqlite_engine, 'connect')
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        return sqlite_engine

    return create_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,  # Enable connection health checks
        pool_size=10,
        max_overflow=20
    )


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = _build_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False)
    )

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


def get_session():
    """Get database session."""
    return db_session


def create_all():
    """Create every table known to the models package."""
    import storefront.models  # noqa: F401  (registers the mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table known to the models package."""
    import storefront.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def check_connection() -> bool:
    """Run a trivial query to check the database is reachable."""
    try:
        with engine.connect() as connection:
            connection.execute(text('SELECT 1'))
        return True
    except Exception:
        return False
