from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from models import Base
import config

# Execution option asking for a write-locked SQLite transaction
SQLITE_IMMEDIATE = "sqlite_immediate"


def _enableImmediateTransactions(engine):
    """
    pysqlite only sends BEGIN before the first write, so reads made earlier
    in a transaction are not protected. Transactions opened with the
    SQLITE_IMMEDIATE option start with BEGIN IMMEDIATE and hold the write
    lock before their first read.
    """

    @event.listens_for(engine, "begin")
    def beginImmediate(conn):
        if conn.get_execution_options().get(SQLITE_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_session(databaseUrl: str = None):
    """Создает и возвращает фабрику сессий SQLAlchemy и движок базы данных"""
    url = databaseUrl or config.DATABASE_URL
    engineKwargs = {"echo": config.SQL_ECHO}

    if url.startswith("sqlite"):
        engineKwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": config.SQLITE_BUSY_TIMEOUT
        }
    else:
        engineKwargs["isolation_level"] = config.DB_ISOLATION_LEVEL
        engineKwargs["pool_pre_ping"] = True

    engine = create_engine(url, **engineKwargs)
    if engine.dialect.name == "sqlite":
        _enableImmediateTransactions(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return session_factory, engine


def init_tables(engine):
    """Инициализирует таблицы базы данных"""
    Base.metadata.create_all(engine)
