from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()


class Database:
    def __init__(self, url: str, isolation_level: str = "SERIALIZABLE"):
        self.url = url
        if url.startswith("sqlite"):
            self.engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
            _use_immediate_transactions(self.engine)
        else:
            self.engine = create_engine(url, isolation_level=isolation_level, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self):
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self):
        Base.metadata.create_all(self.engine)

    def close(self):
        self.engine.dispose()


def _use_immediate_transactions(engine):
    # SQLite has no row locks: every transaction takes the write lock up front,
    # which serializes writers and gives SAVEPOINT support to the audit log.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
