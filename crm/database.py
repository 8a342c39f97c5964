"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# BIGINT primary keys only autoincrement as INTEGER on SQLite
BigId = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def _engine_options(app):
    """Build create_engine kwargs for the configured backend."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    options = {'echo': app.config.get('SQLALCHEMY_ECHO', False)}

    if database_uri.startswith('sqlite'):
        # One shared connection so an in-memory database survives across sessions
        options['connect_args'] = {'check_same_thread': False}
        options['poolclass'] = StaticPool
    else:
        options['pool_pre_ping'] = True  # Enable connection health checks
        options['pool_size'] = 10
        options['max_overflow'] = 20

    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = create_engine(app.config['SQLALCHEMY_DATABASE_URI'], **_engine_options(app))

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
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
    """Create every table known to the models package."""
    import crm.models  # noqa: F401  (register mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table known to the models package."""
    import crm.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
