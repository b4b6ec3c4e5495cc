from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    services = request.app.state.services
    with services.engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    return {"status": "ok"}
