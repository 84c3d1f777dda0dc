from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import logging
import time

import config
from db import Base, engine
from errors import LedgerError
from routers import ALL_ROUTERS

import orm  # noqa: F401  registers tables on Base.metadata

app = FastAPI(title="Asset Movement Ledger API")

Base.metadata.create_all(bind=engine)

# -----------------------
# Logging
# -----------------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info(
        "method=%s path=%s status=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    logger.info("ledger_error code=%s path=%s", exc.code, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

for router in ALL_ROUTERS:
    app.include_router(router)

@app.get("/")
def root():
    return {"message": "Asset Movement Ledger API", "docs": "/docs"}
