from typing import Generator
from sqlmodel import Session
from weblog.db.session import engine

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI Dependency:
    요청마다 DB 세션을 만들고, 응답 후 닫습니다.
    """
    session = Session(engine)
    try:
        yield session
    finally:
        session.close()
