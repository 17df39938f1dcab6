# backend/spabooker/main.py

import logging

from fastapi import FastAPI

from .config import settings
from .redis_client import redis_client
from .routers import bookings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Spa Booking API")
app.include_router(bookings.router)


@app.get("/health")
def health():
    return {"redis": redis_client.ping()}
