import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import CORS_ORIGINS, LOG_LEVEL
from .routers import audit, auth, clients, control, feedback, health, inventory, notifications, projects, transactions

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Project Inventory Ledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "error": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Invalid request payload.", "errors": errors})


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(control.router)
app.include_router(clients.router)
app.include_router(projects.router)
app.include_router(inventory.router)
app.include_router(transactions.router)
app.include_router(feedback.router)
app.include_router(notifications.router)
app.include_router(audit.router)


@app.get("/")
def root():
    return {"status": "ok"}
