import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pizzapos import models  # noqa: F401  (registers tables)
from pizzapos.config import settings
from pizzapos.db import Base, engine
from pizzapos.errors import InvalidTransition, NotFound, PosError, ValidationError
from pizzapos.middleware import RequestIdMiddleware
from pizzapos.routers import inventory, kitchen, orders, products

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("pizzapos")

app = FastAPI(title="Pizzapos API", version="0.1.0")

@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Caller-correctable errors carry their message; server faults do not.
@app.exception_handler(ValidationError)
@app.exception_handler(NotFound)
@app.exception_handler(InvalidTransition)
async def client_error(request: Request, exc: PosError):
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal error"})

app.include_router(orders.router)
app.include_router(products.router)
app.include_router(inventory.router)
app.include_router(kitchen.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
