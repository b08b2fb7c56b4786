# irepair/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from irepair.core.config import LOG_LEVEL
from irepair.core.errors import BookingError
from irepair.db.base import Base, engine
# every model must be registered before the mappers are configured
from irepair.db.models import appointment, notification, rating, shop, technician, user  # noqa: F401
from irepair.api.routes import appointments as appointments_router
from irepair.api.routes import ratings as ratings_router
from irepair.api.routes import technicians as technicians_router
from irepair.api.routes import users as users_router

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("I-Repair booking API started")
    yield


app = FastAPI(title="I-Repair Booking API", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
def root():
    return {"message": "I-Repair Booking API running"}


app.include_router(users_router.router)
app.include_router(technicians_router.router)
app.include_router(appointments_router.router)
app.include_router(ratings_router.router)
