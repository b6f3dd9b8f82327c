import asyncio
import logging
import threading

import pytest
from fastapi import Request
from starlette.responses import JSONResponse

from weblog.aspects.web_log import (
    ArgBinding,
    Pointcut,
    RequestSnapshot,
    WebLogAspect,
    WebLogConfigError,
    render_value,
)


def make_request(query: bytes = b"", session: dict | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/devices/42",
        "root_path": "",
        "query_string": query,
        "headers": [],
        "client": ("10.0.0.7", 5555),
    }
    if session is not None:
        scope["session"] = session
    return Request(scope)


@pytest.fixture
def aspect():
    return WebLogAspect(
        Pointcut.parse(f"{__name__}.*"),
        bindings=[ArgBinding("find_by_id*")],
        max_value_chars=200,
    )


def phase(messages, tag):
    return [m for m in messages if m.startswith(tag)]


# ---------- Pointcut ----------

def test_pointcut_matches_public_functions_in_namespace():
    def find_by_id(request: Request, device_id: int):
        return device_id

    def _helper(request: Request):
        return None

    assert Pointcut.parse(f"{__name__}.*").matches(find_by_id)
    assert not Pointcut.parse(f"{__name__}.*").matches(_helper)
    assert not Pointcut.parse("weblog.api.controllers.*").matches(find_by_id)


def test_pointcut_parse_accepts_comma_separated_patterns():
    cut = Pointcut.parse(" weblog.api.controllers.* , tests.test_web_log_aspect.* ,")
    assert cut.patterns == ("weblog.api.controllers.*", "tests.test_web_log_aspect.*")


# ---------- Request Snapshot ----------

def test_snapshot_keeps_first_value_and_raw_map():
    snap = RequestSnapshot.from_request(make_request(b"tag=a&tag=b&page=2"))
    assert snap.params == {"tag": "a", "page": "2"}
    assert snap.param_map == {"tag": ["a", "b"], "page": ["2"]}
    assert snap.method == "GET"
    assert snap.client_ip == "10.0.0.7"
    assert snap.url.endswith("/devices/42?tag=a&tag=b&page=2")
    assert snap.session is None


def test_snapshot_exposes_session_keys_only():
    snap = RequestSnapshot.from_request(make_request(session={"user": "kim", "cart": [1]}))
    assert snap.session_keys == ["cart", "user"]


# ---------- advices ----------

def test_success_is_logged_once_with_single_completion(aspect, aspect_logs):
    def find_by_id(request: Request, device_id: int):
        return {"id": device_id, "name": "lamp"}

    woven = aspect.weave(find_by_id)
    result = woven(request=make_request(b"verbose=1"), device_id=42)

    assert result == {"id": 42, "name": "lamp"}
    logs = aspect_logs()
    assert len(phase(logs, "[AFTER_RETURNING]")) == 1
    assert len(phase(logs, "[AFTER]")) == 1
    assert phase(logs, "[AFTER_THROWING]") == []
    assert "'name': 'lamp'" in phase(logs, "[AFTER_RETURNING]")[0]

    before = " ".join(phase(logs, "[BEFORE]"))
    assert "ARGS : [device_id=42]" in before
    assert "METHOD : find_by_id" in before
    assert f"DECLARING_TYPE : {__name__}" in before
    assert 'PARAMS : {"verbose": "1"}' in before
    assert 'PARAMS_RAW : {"verbose": ["1"]}' in before
    assert "ip=10.0.0.7" in before
    assert any("find_by_id device_id=42" in m for m in phase(logs, "[BIND]"))


def test_lifecycle_order(aspect, aspect_logs):
    def handler(request: Request, x: int):
        return x

    aspect.weave(handler)(make_request(), 1)

    tags = [m.split(" ", 1)[0] for m in aspect_logs()]
    order = [t for i, t in enumerate(tags) if i == 0 or tags[i - 1] != t]
    assert order == ["[AROUND]", "[BEFORE]", "[AFTER_RETURNING]", "[AFTER]", "[AROUND]"]


def test_arithmetic_error_is_logged_and_reraised_unchanged(aspect, aspect_logs):
    boom = ZeroDivisionError("division by zero")

    def ratio(request: Request, hours: int):
        raise boom

    with pytest.raises(ZeroDivisionError) as excinfo:
        aspect.weave(ratio)(make_request(), hours=0)

    assert excinfo.value is boom
    logs = aspect_logs()
    thrown = phase(logs, "[AFTER_THROWING]")
    assert any("ARGS : [hours=0]" in m for m in thrown)
    assert any("ZeroDivisionError: division by zero" in m for m in thrown)
    assert len(phase(logs, "[AFTER]")) == 1
    assert phase(logs, "[AFTER_RETURNING]") == []
    assert not any("complete" in m for m in phase(logs, "[AROUND]"))


def test_other_errors_skip_error_log_but_complete(aspect, aspect_logs):
    def lookup(request: Request, key: str):
        raise KeyError(key)

    with pytest.raises(KeyError) as excinfo:
        aspect.weave(lookup)(make_request(), key="missing")

    assert excinfo.value.args == ("missing",)
    logs = aspect_logs()
    assert phase(logs, "[AFTER_THROWING]") == []
    assert len(phase(logs, "[AFTER]")) == 1


def test_logged_error_kinds_are_configurable(aspect_logs):
    aspect = WebLogAspect(Pointcut.parse(f"{__name__}.*"), logged_errors=(KeyError,))

    def lookup(request: Request):
        raise KeyError("k")

    with pytest.raises(KeyError):
        aspect.weave(lookup)(make_request())

    assert phase(aspect_logs(), "[AFTER_THROWING]")


def test_around_invokes_handler_exactly_once(aspect):
    calls = []

    def create(request: Request, name: str):
        calls.append(name)
        return len(calls)

    assert aspect.weave(create)(make_request(), "lamp") == 1
    assert calls == ["lamp"]


def test_async_handler_is_awaited_once(aspect, aspect_logs):
    calls = []

    async def probe(request: Request, device_id: int):
        calls.append(device_id)
        await asyncio.sleep(0)
        return "pong"

    woven = aspect.weave(probe)
    assert asyncio.iscoroutinefunction(woven)
    assert asyncio.run(woven(request=make_request(), device_id=7)) == "pong"
    assert calls == [7]
    assert any("'pong'" in m for m in phase(aspect_logs(), "[AFTER_RETURNING]"))


# ---------- weaving ----------

def test_weave_keeps_signature_and_is_idempotent(aspect):
    def find_by_id(request: Request, device_id: int):
        return device_id

    woven = aspect.weave(find_by_id)
    assert woven.__name__ == "find_by_id"
    assert woven.__wrapped__ is find_by_id
    assert aspect.weave(woven) is woven


def test_weave_without_request_parameter_fails_at_composition(aspect):
    def orphan(device_id: int):
        return device_id

    with pytest.raises(WebLogConfigError):
        aspect.weave(orphan)


def test_weave_if_selected_leaves_other_namespaces_alone():
    aspect = WebLogAspect(Pointcut.parse("weblog.api.controllers.*"))

    def handler(request: Request):
        return None

    assert aspect.weave_if_selected(handler) is handler


# ---------- rendering ----------

def test_render_value_reads_response_body_and_truncates():
    text = render_value(JSONResponse({"name": "lamp"}), 100)
    assert text == '200 {"name":"lamp"}'
    assert render_value("x" * 50, 10).startswith("'xxxxxxxxx...")


def test_broken_repr_does_not_change_outcome(aspect):
    class Weird:
        def __repr__(self):
            raise RuntimeError("no repr")

    weird = Weird()

    def handler(request: Request):
        return weird

    assert aspect.weave(handler)(make_request()) is weird
    assert render_value(weird, 100) == "<Weird>"


# ---------- concurrency ----------

def test_concurrent_invocations_do_not_mix_arguments(aspect, caplog):
    caplog.set_level(logging.INFO, logger="weblog.aspect")
    barrier = threading.Barrier(8)

    def find_by_id(request: Request, device_id: int):
        barrier.wait(timeout=5)
        return f"device-{device_id}"

    woven = aspect.weave(find_by_id)
    errors = []

    def worker(n):
        try:
            assert woven(make_request(f"n={n}".encode()), n) == f"device-{n}"
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []

    # invocation id 별로 ARGS / PARAMS / RESULT 가 같은 n 을 가리키는지 확인
    by_invocation: dict[str, list[str]] = {}
    for record in caplog.records:
        if record.name != "weblog.aspect":
            continue
        tag, inv_id, rest = record.getMessage().split(" ", 2)
        by_invocation.setdefault(inv_id, []).append(rest)

    assert len(by_invocation) == 8
    for lines in by_invocation.values():
        args_line = next(line for line in lines if line.startswith("ARGS : "))
        n = args_line[len("ARGS : [device_id="):-1]
        assert f'PARAMS : {{"n": "{n}"}}' in lines
        assert f"RESULT : 'device-{n}'" in lines


# ---------- async error paths ----------

def test_async_arithmetic_error_is_logged_and_reraised_unchanged(aspect, aspect_logs):
    boom = ZeroDivisionError("division by zero")

    async def ratio(request: Request, hours: int):
        await asyncio.sleep(0)
        raise boom

    with pytest.raises(ZeroDivisionError) as excinfo:
        asyncio.run(aspect.weave(ratio)(make_request(), hours=0))

    assert excinfo.value is boom
    logs = aspect_logs()
    thrown = phase(logs, "[AFTER_THROWING]")
    assert any("ARGS : [hours=0]" in m for m in thrown)
    assert any("ZeroDivisionError: division by zero" in m for m in thrown)
    assert len(phase(logs, "[AFTER]")) == 1
    assert phase(logs, "[AFTER_RETURNING]") == []
    assert not any("complete" in m for m in phase(logs, "[AROUND]"))


def test_async_other_errors_skip_error_log_but_complete(aspect, aspect_logs):
    missing = KeyError("missing")

    async def lookup(request: Request, key: str):
        await asyncio.sleep(0)
        raise missing

    with pytest.raises(KeyError) as excinfo:
        asyncio.run(aspect.weave(lookup)(make_request(), key="missing"))

    assert excinfo.value is missing
    logs = aspect_logs()
    assert phase(logs, "[AFTER_THROWING]") == []
    assert len(phase(logs, "[AFTER]")) == 1


# ---------- defaults / private selectors ----------

def test_default_arguments_are_logged(aspect, aspect_logs):
    def list_page(request: Request, page: int = 1, size: int = 20):
        return page * size

    assert aspect.weave(list_page)(make_request(), size=5) == 5

    before = phase(aspect_logs(), "[BEFORE]")
    assert any("ARGS : [page=1, size=5]" in m for m in before)


def test_pointcut_skips_private_modules_and_classes():
    cut = Pointcut.parse("weblog.api.controllers.*")

    def handler(request: Request):
        return None

    handler.__module__ = "weblog.api.controllers._internal"
    handler.__qualname__ = "handler"
    assert not cut.matches(handler)

    handler.__module__ = "weblog.api.controllers.devices"
    assert cut.matches(handler)

    handler.__qualname__ = "_Hidden.handler"
    assert not cut.matches(handler)
