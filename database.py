# database.py - エンジン・セッション管理
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import config


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        # セッションはスレッドプールの別スレッドからも使われる
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        # SQLiteは外部キー制約がデフォルトで無効
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, conn_record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys = ON")
            cur.close()

    return engine


# プロセス全体で共有するコネクションプール
engine = build_engine(config.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# データベースセッション取得
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
