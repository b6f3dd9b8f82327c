from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from weblog.aspects.web_log import WebLogRoute
from weblog.core.docs import success_example, error_example
from weblog.core.errors import ErrorCode, http_error, success_response, STANDARD_ERROR_RESPONSES
from weblog.db.models import DeviceStatus
from weblog.deps.db import get_db
from weblog.repositories import devices as devices_repo
from weblog.schemas.devices import (
    DeviceCreate,
    DeviceListResponse,
    DeviceResponse,
    UsageRecord,
    UtilizationResponse,
)

# 이 모듈의 public 핸들러는 모두 요청 로깅 인터셉터를 거친다
router = APIRouter(
    prefix="/devices",
    tags=["devices"],
    responses=STANDARD_ERROR_RESPONSES,
    route_class=WebLogRoute,
)

_NOT_FOUND = "기기를 찾을 수 없습니다."


def _get_or_404(db: Session, device_id: int):
    device = devices_repo.get_device(db, device_id)
    if not device:
        raise http_error(404, ErrorCode.RESOURCE_NOT_FOUND, _NOT_FOUND)
    return device


# 1. 목록 조회 (GET /devices)
@router.get(
    "",
    response_model=DeviceListResponse,
    responses={**success_example(DeviceListResponse)},
)
def list_devices(
    request: Request,
    status: Optional[DeviceStatus] = Query(None, description="상태 필터"),
    db: Session = Depends(get_db),
):
    items = devices_repo.list_devices(db, status)
    payload = DeviceListResponse(items=[DeviceResponse.model_validate(d) for d in items])
    return success_response(
        request,
        message="기기 목록 조회 성공",
        data=payload.model_dump(),
    )


# 2. 등록 (POST /devices)
@router.post(
    "",
    status_code=201,
    response_model=DeviceResponse,
    responses={
        **success_example(DeviceResponse, message="기기 등록 완료", status_code=201),
        409: error_example(409, ErrorCode.DUPLICATE_RESOURCE, "이미 등록된 시리얼 번호입니다."),
    },
)
def create_device(request: Request, body: DeviceCreate, db: Session = Depends(get_db)):
    try:
        device = devices_repo.create_device(db, body)
    except ValueError as e:
        raise http_error(409, ErrorCode.DUPLICATE_RESOURCE, str(e))

    return success_response(
        request,
        status_code=201,
        message="기기가 등록되었습니다.",
        data=DeviceResponse.model_validate(device).model_dump(),
    )


# 3. 단건 조회 (GET /devices/{device_id})
@router.get(
    "/{device_id}",
    response_model=DeviceResponse,
    responses={
        **success_example(DeviceResponse, message="기기 조회 성공"),
        404: error_example(404, ErrorCode.RESOURCE_NOT_FOUND, _NOT_FOUND),
    },
)
def find_by_id(request: Request, device_id: int, db: Session = Depends(get_db)):
    device = _get_or_404(db, device_id)
    return success_response(
        request,
        message="기기 조회 성공",
        data=DeviceResponse.model_validate(device).model_dump(),
    )


# 4. 평균 전력 (GET /devices/{device_id}/utilization?hours=)
@router.get(
    "/{device_id}/utilization",
    response_model=UtilizationResponse,
    responses={
        **success_example(UtilizationResponse),
        400: error_example(400, ErrorCode.ARITHMETIC_ERROR, "계산할 수 없는 요청입니다."),
        404: error_example(404, ErrorCode.RESOURCE_NOT_FOUND, _NOT_FOUND),
    },
)
def utilization(
    request: Request,
    device_id: int,
    hours: int = Query(..., ge=0, description="측정 시간(h)"),
    db: Session = Depends(get_db),
):
    device = _get_or_404(db, device_id)
    # hours=0 이면 ZeroDivisionError -> 인터셉터 로그 후 400 응답
    average = devices_repo.average_power_kw(device, hours)
    payload = UtilizationResponse(
        device_id=device.id,
        hours=hours,
        usage_kwh=device.usage_kwh,
        average_kw=round(average, 3),
    )
    return success_response(request, message="평균 전력 계산 성공", data=payload.model_dump())


# 5. 사용량 누적 (PATCH /devices/{device_id}/usage)
@router.patch(
    "/{device_id}/usage",
    response_model=DeviceResponse,
    responses={
        **success_example(DeviceResponse, message="사용량 기록 완료"),
        400: error_example(400, ErrorCode.BAD_REQUEST, "사용량은 음수일 수 없습니다."),
        404: error_example(404, ErrorCode.RESOURCE_NOT_FOUND, _NOT_FOUND),
    },
)
def record_usage(
    request: Request,
    device_id: int,
    body: UsageRecord,
    db: Session = Depends(get_db),
):
    if body.kwh < 0:
        raise http_error(400, ErrorCode.BAD_REQUEST, "사용량은 음수일 수 없습니다.")

    device = devices_repo.add_usage(db, _get_or_404(db, device_id), body.kwh)
    return success_response(
        request,
        message="사용량이 기록되었습니다.",
        data=DeviceResponse.model_validate(device).model_dump(),
    )


# 6. 연결 확인 (GET /devices/{device_id}/probe) - 비동기 핸들러
@router.get(
    "/{device_id}/probe",
    responses={
        **success_example(message="연결 확인"),
        404: error_example(404, ErrorCode.RESOURCE_NOT_FOUND, _NOT_FOUND),
    },
)
async def probe(request: Request, device_id: int, db: Session = Depends(get_db)):
    # 동기 Session 조회는 이벤트 루프 밖에서
    device = await run_in_threadpool(_get_or_404, db, device_id)
    return success_response(
        request,
        message="연결 확인",
        data={
            "deviceId": device.id,
            "status": device.status.value,
            "reachable": device.status == DeviceStatus.ONLINE,
        },
    )
