import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO", aspect_level: Optional[str] = None) -> None:
    """
    앱 전체 로깅 기본 설정.
    - stdout 출력, 포맷 통일
    - aspect_level을 주면 요청 인터셉터 로그(weblog.aspect)만 별도 레벨로 조정
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if aspect_level:
        logging.getLogger("weblog.aspect").setLevel(
            getattr(logging, aspect_level.upper(), numeric_level)
        )

    # SQL 에코는 SQL_ECHO 설정으로만 켠다
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# 패키지 공용 logger (다른 파일들이 import해서 씀)
logger = logging.getLogger("weblog")
