from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from weblog.core.logging import logger

# ==========================================
# 1. Error Codes
# ==========================================

class ErrorCode(str, Enum):
    # 400
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    ARITHMETIC_ERROR = "ARITHMETIC_ERROR"

    # 404
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # 409
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    STATE_CONFLICT = "STATE_CONFLICT"

    # 422
    UNPROCESSABLE_ENTITY = "UNPROCESSABLE_ENTITY"

    # 500
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # Success
    SUCCESS = "SUCCESS"


DEFAULT_ERROR_CODE_BY_STATUS = {
    400: ErrorCode.BAD_REQUEST,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.STATE_CONFLICT,
    422: ErrorCode.UNPROCESSABLE_ENTITY,
    500: ErrorCode.INTERNAL_SERVER_ERROR,
}


def resolve_error_code(status_code: int) -> ErrorCode:
    return DEFAULT_ERROR_CODE_BY_STATUS.get(status_code, ErrorCode.UNKNOWN_ERROR)


# ==========================================
# 2. Response Helpers & Format
# ==========================================

def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

def success_response(
    request: Request,
    data: Any = None,
    *,
    status_code: int = 200,
    code: ErrorCode = ErrorCode.SUCCESS,
    message: str = "성공",
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "timestamp": _utc_now_iso(),
            "path": request.url.path,
            "status": status_code,
            "code": code.value,
            "message": message,
            "data": data,
        }),
    )

def error_response(
    request: Request,
    *,
    status_code: int,
    code: ErrorCode,
    message: str,
    details: Optional[dict] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "timestamp": _utc_now_iso(),
            "path": request.url.path,
            "status": status_code,
            "code": code.value,
            "message": message,
            "details": details or {},
        }),
    )

# 모든 라우터에 기본 적용되는 에러 응답 예시 (Swagger용)
STANDARD_ERROR_RESPONSES = {
    500: {"description": "서버 내부 오류"}
}


# ==========================================
# 3. http_error (Custom Exception)
# ==========================================

def http_error(
    status_code: int,
    code: ErrorCode,
    message: str,
    details: dict | None = None,
) -> HTTPException:
    """
    컨트롤러의 비즈니스 에러는 이 함수로 만들어 raise 합니다.
    """
    return HTTPException(
        status_code=status_code,
        detail={
            "code": code.value,
            "message": message,
            "details": details or {},
        },
    )


# ==========================================
# 4. Exception Handlers
# ==========================================

def _extract_error(exc: HTTPException) -> tuple[ErrorCode, str, dict | None]:
    code: ErrorCode = resolve_error_code(exc.status_code)
    message = "오류가 발생했습니다."
    details: dict | None = None

    if isinstance(exc.detail, dict):
        # http_error로 생성된 예외
        message = exc.detail.get("message", message)
        details = exc.detail.get("details")
        if "code" in exc.detail:
            try:
                code = ErrorCode(exc.detail["code"])
            except ValueError:
                pass
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    code, message, details = _extract_error(exc)
    logger.warning("%s %s %s - %s", code.value, request.method, request.url.path, message)

    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    field_errors: dict[str, str] = {}
    for err in exc.errors():
        # loc: ('query', 'hours') -> "query.hours"
        loc = ".".join(str(x) for x in err.get("loc", []))
        field_errors[loc] = err.get("msg", "잘못된 값입니다.")

    logger.warning("VALIDATION_FAILED %s %s - %s", request.method, request.url.path, field_errors)

    return error_response(
        request,
        status_code=400,
        code=ErrorCode.VALIDATION_FAILED,
        message="입력값이 유효하지 않습니다.",
        details=field_errors,
    )

async def arithmetic_exception_handler(request: Request, exc: ArithmeticError):
    # 인터셉터가 이미 로그를 남겼으므로 여기서는 응답 변환만 한다
    return error_response(
        request,
        status_code=400,
        code=ErrorCode.ARITHMETIC_ERROR,
        message="계산할 수 없는 요청입니다.",
        details={"error": str(exc)},
    )

async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled Error %s %s", request.method, request.url.path)
    return error_response(
        request,
        status_code=500,
        code=ErrorCode.INTERNAL_SERVER_ERROR,
        message="서버 내부 오류가 발생했습니다.",
    )
