# 요청 id를 부여하고 요청/응답 시간을 기록하는 미들웨어

import time
import uuid
from fastapi import Request
from weblog.core.logging import logger

REQUEST_ID_HEADER = "X-Request-Id"

async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.exception("[%s] %s %s -> EXCEPTION (%.1fms)",
                         request_id, request.method, request.url.path, elapsed_ms)
        raise

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("[%s] %s %s -> %s (%.1fms)",
                request_id, request.method, request.url.path, response.status_code, elapsed_ms)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
