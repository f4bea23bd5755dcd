import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from config import Settings, settings
from database import Database
from booking import BookingCoordinator
from errors import BookingError
from logging_config import configure_logging
from sweeper import ExpirySweeper
from routers import doctor, slot, appointment, patient
import models

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(app_settings.sqlalchemy_database_url, isolation_level=app_settings.isolation_level)
        database.create_all()
        coordinator = BookingCoordinator(
            database,
            expiry_minutes=app_settings.appointment_expiry_minutes,
            max_attempts=app_settings.booking_max_attempts,
            retry_max_wait=app_settings.booking_retry_max_wait,
        )
        sweeper = ExpirySweeper(coordinator, interval_seconds=app_settings.sweeper_interval_seconds)
        app.state.database = database
        app.state.coordinator = coordinator
        app.state.sweeper = sweeper
        if app_settings.sweeper_enabled:
            sweeper.start()
        logger.info("Appointment booking service started")
        try:
            yield
        finally:
            sweeper.shutdown()
            database.close()
            logger.info("Appointment booking service stopped")

    configure_logging(app_settings.log_level, app_settings.log_file)
    app = FastAPI(title="Healthcare Appointment Booking", lifespan=lifespan)

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind})

    @app.get("/health")
    def health():
        return {"status": "OK", "message": "Healthcare Appointment System is running"}

    app.include_router(doctor.router)
    app.include_router(slot.router)
    app.include_router(appointment.router)
    app.include_router(patient.router)
    return app


app = create_app()
