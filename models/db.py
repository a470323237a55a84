import threading
from concurrent.futures import Future

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from services.errors import PersistenceError

db = SQLAlchemy()


class ConnectionCache:
    """
    Process-wide memo for the database connection.

    The first caller runs ``connect``; callers arriving while that attempt is
    in flight wait on it instead of opening their own. A failed attempt is
    not remembered, so the next call tries again.
    """

    def __init__(self, connect):
        self._connect = connect
        self._lock = threading.Lock()
        self._conn = None
        self._pending = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def get(self):
        with self._lock:
            if self._conn is not None:
                return self._conn
            pending = self._pending
            leader = pending is None
            if leader:
                pending = self._pending = Future()

        if not leader:
            return pending.result()

        try:
            conn = self._connect()
        except SQLAlchemyError as exc:
            err = PersistenceError(f"Database connection failed: {exc}")
            self._fail(pending, err)
            raise err from exc
        except Exception as exc:
            self._fail(pending, exc)
            raise

        with self._lock:
            self._conn = conn
            self._pending = None
        pending.set_result(conn)
        return conn

    def reset(self):
        with self._lock:
            self._conn = None

    def _fail(self, pending, exc):
        with self._lock:
            self._pending = None
        pending.set_exception(exc)


def open_engine(app):
    """Connect function used by the app: ping the engine once and hand it back."""
    with app.app_context():
        engine = db.engine
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        app.logger.info("Database connection established (%s)", engine.url.render_as_string(hide_password=True))
        return engine
