from typing import Any, Dict, Type
from pydantic import BaseModel

from weblog.core.errors import ErrorCode

def success_example(
    model: Type[BaseModel] | None = None,
    description: str = "성공",
    message: str = "성공",
    status_code: int = 200,
) -> Dict[str, Any]:
    """
    Swagger의 2xx 응답 예시를 생성합니다.
    모델에 json_schema_extra 예시가 있으면 data 자리에 넣습니다.
    """
    data_example: Any = {}
    if model is not None:
        examples = model.model_json_schema().get("examples") or []
        if examples:
            data_example = examples[0]

    return {
        status_code: {
            "description": description,
            "content": {
                "application/json": {
                    "example": {
                        "timestamp": "2026-01-01T00:00:00Z",
                        "path": "/request/path",
                        "status": status_code,
                        "code": ErrorCode.SUCCESS.value,
                        "message": message,
                        "data": data_example,
                    }
                }
            },
        }
    }

def error_example(
    status_code: int,
    code: ErrorCode,
    message: str,
    description: str | None = None,
    details: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Swagger의 4xx, 5xx 에러 응답 예시."""
    return {
        "description": description or message,
        "content": {
            "application/json": {
                "example": {
                    "timestamp": "2026-01-01T00:00:00Z",
                    "path": "/error/path",
                    "status": status_code,
                    "code": code.value,
                    "message": message,
                    "details": details or {},
                }
            }
        },
    }
