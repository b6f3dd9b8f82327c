import time
from datetime import timedelta
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, text

from weblog.deps.db import get_db
from weblog.core.config import settings
from weblog.core.docs import success_example
from weblog.core.errors import success_response

# controllers 네임스페이스 밖이므로 요청 로깅 인터셉터 대상이 아니다
router = APIRouter(tags=["system"])

START_TIME = time.time()

@router.get(
    "/health",
    responses={**success_example(message="시스템 상태 정상")}
)
def health_check(request: Request, db: Session = Depends(get_db)):
    db.exec(text("SELECT 1"))

    uptime_seconds = int(time.time() - START_TIME)

    return success_response(
        request,
        message="System is healthy",
        data={
            "status": "ok",
            "version": settings.APP_VERSION,
            "build_time": settings.BUILD_TIME,
            "uptime": str(timedelta(seconds=uptime_seconds)),
            "uptime_seconds": uptime_seconds,
            "db": "connected",
        }
    )
