from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from weblog.api.controllers import controller_routers
from weblog.api.routes import all_routers
from weblog.core.config import settings
from weblog.core.errors import (
    arithmetic_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from weblog.core.logging import setup_logging
from weblog.db.session import init_db
from weblog.middlewares.logging import logging_middleware

app = FastAPI(title="Device API", version=settings.APP_VERSION)

@app.on_event("startup")
def on_startup():
    setup_logging(settings.LOG_LEVEL, settings.WEBLOG_LOG_LEVEL or None)
    init_db()


app.middleware("http")(logging_middleware)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(ArithmeticError, arithmetic_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# controllers 라우터는 WebLogRoute를 쓰므로 include 시점에도 인터셉터가 유지된다
for r in [*all_routers, *controller_routers]:
    app.include_router(r)
