from fastapi import Request

from booking import BookingCoordinator


def get_db(request: Request):
    with request.app.state.database.transaction() as db:
        yield db


def get_coordinator(request: Request) -> BookingCoordinator:
    return request.app.state.coordinator
