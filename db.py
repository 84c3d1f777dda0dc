from pathlib import Path
import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

ROOT_DIR = Path(__file__).resolve().parent


def resolve_db_path() -> Path:
    """SQLite file from APP_DB_PATH (relative paths hang off the project root), else data/ledger.db."""
    custom_path = os.getenv("APP_DB_PATH")
    if custom_path:
        db_path = Path(custom_path).expanduser()
        if not db_path.is_absolute():
            db_path = (ROOT_DIR / db_path).resolve()
    else:
        db_path = ROOT_DIR / "data" / "ledger.db"

    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


DB_PATH = resolve_db_path()
DATABASE_URL = f"sqlite:///{DB_PATH.as_posix()}"

# seconds a writer waits on a competing transaction before "database is locked"
DB_TIMEOUT = float(os.getenv("APP_DB_TIMEOUT", "5"))

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": DB_TIMEOUT},
)


@event.listens_for(engine, "connect")
def _sqlite_pragmas(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL")
    cur.execute(f"PRAGMA busy_timeout={int(DB_TIMEOUT * 1000)}")
    cur.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

class Base(DeclarativeBase):
    pass
