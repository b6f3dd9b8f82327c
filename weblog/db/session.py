from sqlmodel import SQLModel, create_engine
from weblog.core.config import settings

# sqlite는 스레드풀에서 세션이 오가므로 check_same_thread를 끈다
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    connect_args=_connect_args,
)

def init_db():
    # 테이블 메타데이터 등록을 위해 모델 import
    from weblog.db import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
