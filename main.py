from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from billing.api.v1.api import api_router  # noqa: E402
from billing.core.config import settings  # noqa: E402
from billing.core.errors import AlreadyPaidOrNotFound, LedgerError  # noqa: E402
from billing.core.logging import configure_logging  # noqa: E402
from billing.db.mongo import close_mongo_connection, connect_to_mongo  # noqa: E402

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    yield
    await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, AlreadyPaidOrNotFound):
        # Lost a race or a repeated request; adapters should not alarm users
        body["benign"] = True
        body["transaction_id"] = exc.transaction_id
    return JSONResponse(status_code=exc.status_code, content=body)


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}


@app.get("/health")
async def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
