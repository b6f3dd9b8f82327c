"""
컨트롤러 요청 로깅 인터셉터.

선택된 네임스페이스(Pointcut)의 public 핸들러를 감싸서
before / after_returning / after_throwing / after / around 시점에 info 로그를 남긴다.
핸들러의 결과나 예외는 절대 바꾸지 않는다.

요청 정보는 전역 상태에서 찾지 않고, 핸들러가 명시적으로 받는
`request: Request` 인자에서 꺼낸다.
"""
import functools
import inspect
import json
import logging
import uuid
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from fastapi import Request
from fastapi.routing import APIRoute
from starlette.responses import Response

from weblog.core.config import settings

logger = logging.getLogger("weblog.aspect")

WOVEN_ATTR = "__weblog_woven__"


class WebLogConfigError(TypeError):
    """인터셉터를 붙일 수 없는 핸들러 (조립 시점 오류)."""


# ==========================================
# 1. Selector
# ==========================================

@dataclass(frozen=True)
class Pointcut:
    """`모듈.qualname` 에 대한 glob 패턴 묶음. `_` 로 시작하는 경로 조각이 있으면 항상 제외."""

    patterns: tuple[str, ...]

    @classmethod
    def parse(cls, raw: str) -> "Pointcut":
        return cls(tuple(p.strip() for p in raw.split(",") if p.strip()))

    def matches(self, func: Callable) -> bool:
        if not getattr(func, "__name__", ""):
            return False
        target = f"{func.__module__}.{func.__qualname__}"
        # 비공개 모듈(_internal) / 클래스(_Hidden) 안의 함수도 제외
        if any(part.startswith("_") for part in target.split(".") if part != "<locals>"):
            return False
        return any(fnmatchcase(target, p) for p in self.patterns)


@dataclass(frozen=True)
class ArgBinding:
    """메서드 이름이 패턴에 맞으면 첫 번째 인자를 따로 기록한다 (예: find_by_id*)."""

    method_pattern: str

    def bind(self, inv: "Invocation") -> Optional[tuple[str, Any]]:
        if not inv.args or not fnmatchcase(inv.name, self.method_pattern):
            return None
        return inv.args[0]


# ==========================================
# 2. Invocation Context / Request Snapshot
# ==========================================

@dataclass(frozen=True)
class RequestSnapshot:
    method: str
    url: str
    client_ip: Optional[str]
    params: dict[str, str]
    param_map: dict[str, list[str]]
    session: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestSnapshot":
        query = request.query_params
        # getParameter 처럼 첫 번째 값, getParameterMap 처럼 전체 값
        param_map = {key: query.getlist(key) for key in query.keys()}
        params = {key: values[0] for key, values in param_map.items() if values}
        # SessionMiddleware가 없으면 scope에 session이 없다
        session = request.scope.get("session")
        return cls(
            method=request.method,
            url=str(request.url),
            client_ip=request.client.host if request.client else None,
            params=params,
            param_map=param_map,
            session=dict(session) if session is not None else None,
        )

    @property
    def session_keys(self) -> Optional[list[str]]:
        if self.session is None:
            return None
        return sorted(self.session.keys())


def _new_invocation_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Invocation:
    declaring_type: str
    name: str
    args: list[tuple[str, Any]]
    request: RequestSnapshot
    invocation_id: str = field(default_factory=_new_invocation_id)

    @property
    def signature(self) -> str:
        return f"{self.declaring_type}.{self.name}"


# ==========================================
# 3. Rendering
# ==========================================

def _truncate(text: str, limit: int) -> str:
    if limit > 0 and len(text) > limit:
        return f"{text[:limit]}...(+{len(text) - limit} chars)"
    return text


def render_value(value: Any, limit: int) -> str:
    # 로그 렌더링 실패가 핸들러 결과를 바꾸면 안 된다
    try:
        if isinstance(value, Response):
            body = getattr(value, "body", b"")
            text = f"{value.status_code} {bytes(body).decode('utf-8', errors='replace')}"
        else:
            text = repr(value)
    except Exception:
        text = f"<{type(value).__name__}>"
    return _truncate(text, limit)


def render_args(args: Sequence[tuple[str, Any]], limit: int) -> str:
    return "[" + ", ".join(f"{name}={render_value(v, limit)}" for name, v in args) + "]"


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


# ==========================================
# 4. Aspect
# ==========================================

class WebLogAspect:
    def __init__(
        self,
        pointcut: Pointcut,
        *,
        logged_errors: tuple[type[BaseException], ...] = (ArithmeticError,),
        bindings: Sequence[ArgBinding] = (),
        max_value_chars: int = 2000,
        log: logging.Logger = logger,
    ):
        self.pointcut = pointcut
        self.logged_errors = logged_errors
        self.bindings = tuple(bindings)
        self.max_value_chars = max_value_chars
        self.log = log

    # ---------- advices ----------

    def before(self, inv: Invocation) -> None:
        req = inv.request
        self.log.info("[BEFORE] %s ARGS : %s", inv.invocation_id, self._args(inv))
        self.log.info("[BEFORE] %s METHOD : %s", inv.invocation_id, inv.name)
        self.log.info("[BEFORE] %s DECLARING_TYPE : %s", inv.invocation_id, inv.declaring_type)
        self.log.info(
            "[BEFORE] %s REQUEST : %s %s ip=%s",
            inv.invocation_id, req.method, req.url, req.client_ip,
        )
        self.log.info("[BEFORE] %s PARAMS : %s", inv.invocation_id, _to_json(req.params))
        self.log.info("[BEFORE] %s PARAMS_RAW : %s", inv.invocation_id, _to_json(req.param_map))
        self.log.info("[BEFORE] %s SESSION : %s", inv.invocation_id, req.session_keys)

        for binding in self.bindings:
            bound = binding.bind(inv)
            if bound is not None:
                name, value = bound
                self.log.info(
                    "[BIND] %s %s %s=%s",
                    inv.invocation_id, inv.name, name, render_value(value, self.max_value_chars),
                )

    def after_returning(self, inv: Invocation, result: Any) -> None:
        self.log.info(
            "[AFTER_RETURNING] %s RESULT : %s",
            inv.invocation_id, render_value(result, self.max_value_chars),
        )

    def after_throwing(self, inv: Invocation, exc: BaseException) -> None:
        if not isinstance(exc, self.logged_errors):
            return
        self.log.info("[AFTER_THROWING] %s ARGS : %s", inv.invocation_id, self._args(inv))
        self.log.info(
            "[AFTER_THROWING] %s %s: %s", inv.invocation_id, type(exc).__name__, exc,
        )

    def after(self, inv: Invocation) -> None:
        self.log.info("[AFTER] %s %s finished", inv.invocation_id, inv.signature)

    def around(self, inv: Invocation, proceed: Callable[[], Any]) -> Any:
        self._around_start(inv)
        self.before(inv)
        try:
            result = proceed()
        except Exception as exc:
            self.after_throwing(inv, exc)
            raise
        else:
            self.after_returning(inv, result)
        finally:
            self.after(inv)
        self.log.info("[AROUND] %s complete %s", inv.invocation_id, inv.signature)
        return result

    async def around_async(self, inv: Invocation, proceed: Callable[[], Awaitable[Any]]) -> Any:
        self._around_start(inv)
        self.before(inv)
        try:
            result = await proceed()
        except Exception as exc:
            self.after_throwing(inv, exc)
            raise
        else:
            self.after_returning(inv, result)
        finally:
            self.after(inv)
        self.log.info("[AROUND] %s complete %s", inv.invocation_id, inv.signature)
        return result

    def _around_start(self, inv: Invocation) -> None:
        self.log.info("[AROUND] %s target %s", inv.invocation_id, inv.signature)
        self.log.info("[AROUND] %s ARGS : %s", inv.invocation_id, self._args(inv))

    def _args(self, inv: Invocation) -> str:
        return render_args(inv.args, self.max_value_chars)

    # ---------- weaving ----------

    def weave(self, func: Callable) -> Callable:
        """핸들러를 감싼다. 시그니처는 유지되므로 FastAPI 의존성 주입은 그대로 동작한다."""
        if getattr(func, WOVEN_ATTR, False):
            return func

        sig = inspect.signature(func)
        request_param = _find_request_param(sig)
        if request_param is None:
            raise WebLogConfigError(
                f"{func.__module__}.{func.__qualname__} has no Request parameter to log"
            )
        declaring_type, name = _split_qualname(func)

        def invocation_for(args: tuple, kwargs: dict) -> Invocation:
            bound = sig.bind(*args, **kwargs)
            bound.apply_defaults()
            call_args = [(k, v) for k, v in bound.arguments.items() if k != request_param]
            return Invocation(
                declaring_type=declaring_type,
                name=name,
                args=call_args,
                request=RequestSnapshot.from_request(bound.arguments[request_param]),
            )

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                inv = invocation_for(args, kwargs)
                return await self.around_async(inv, lambda: func(*args, **kwargs))

            wrapper = async_wrapper
        else:
            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                inv = invocation_for(args, kwargs)
                return self.around(inv, lambda: func(*args, **kwargs))

            wrapper = sync_wrapper

        setattr(wrapper, WOVEN_ATTR, True)
        return wrapper

    def weave_if_selected(self, func: Callable) -> Callable:
        if self.pointcut.matches(func):
            return self.weave(func)
        return func


def _find_request_param(sig: inspect.Signature) -> Optional[str]:
    for param in sig.parameters.values():
        ann = param.annotation
        if inspect.isclass(ann) and issubclass(ann, Request):
            return param.name
    if "request" in sig.parameters:
        return "request"
    return None


def _split_qualname(func: Callable) -> tuple[str, str]:
    # 클래스 메서드면 클래스까지 declaring type에 포함
    owner, _, name = func.__qualname__.rpartition(".")
    owner = owner.replace(".<locals>", "")
    declaring_type = f"{func.__module__}.{owner}" if owner else func.__module__
    return declaring_type, name


web_log_aspect = WebLogAspect(
    Pointcut.parse(settings.WEBLOG_POINTCUT),
    bindings=[ArgBinding(settings.WEBLOG_BIND_PATTERN)] if settings.WEBLOG_BIND_PATTERN else [],
    max_value_chars=settings.WEBLOG_MAX_VALUE_CHARS,
)


class WebLogRoute(APIRoute):
    """endpoint가 Pointcut에 걸리면 web_log_aspect로 감싸는 라우트 클래스.

    사용: APIRouter(route_class=WebLogRoute)
    """

    aspect: WebLogAspect = web_log_aspect

    def __init__(self, path: str, endpoint: Callable, **kwargs: Any) -> None:
        super().__init__(path, self.aspect.weave_if_selected(endpoint), **kwargs)
