import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth.security import get_password_hash
from .database import get_db, next_id
from .routes import attendance as attendance_routes
from .routes import auth as auth_routes
from .routes import catalog as catalog_routes
from .routes import exams as exam_routes
from .routes import grades as grade_routes
from .routes import homework as homework_routes
from .routes import timetables as timetable_routes

logger = logging.getLogger(__name__)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
DEFAULT_ADMIN_USERNAME = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin")
HOST = os.getenv("SCHOOLBOARD_HOST", "127.0.0.1")
PORT = int(os.getenv("SCHOOLBOARD_PORT", "8000"))


app = FastAPI(title="SchoolBoard")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in CORS_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def ensure_default_admin(db) -> bool:
    """Create the bootstrap admin account if it does not exist yet."""
    if db["users"].find_one({"username": DEFAULT_ADMIN_USERNAME}):
        return False
    db["users"].insert_one(
        {
            "_id": next_id(db, "users"),
            "username": DEFAULT_ADMIN_USERNAME,
            "email": f"{DEFAULT_ADMIN_USERNAME}@example.com",
            "full_name": "Administrator",
            "role": "admin",
            "hashed_password": get_password_hash(DEFAULT_ADMIN_PASSWORD),
            "is_active": True,
        }
    )
    logger.info("Created default admin user %s", DEFAULT_ADMIN_USERNAME)
    return True


@app.on_event("startup")
def bootstrap_admin():
    ensure_default_admin(app.dependency_overrides.get(get_db, get_db)())


@app.get("/api/health")
def health_check():
    return {"status": "ok"}


app.include_router(auth_routes.router, prefix="/api/auth", tags=["auth"])
app.include_router(catalog_routes.router, prefix="/api", tags=["catalog"])
app.include_router(grade_routes.router, prefix="/api", tags=["grades"])
app.include_router(exam_routes.router, prefix="/api", tags=["exams"])
app.include_router(attendance_routes.router, prefix="/api", tags=["attendance"])
app.include_router(homework_routes.router, prefix="/api", tags=["homework"])
app.include_router(timetable_routes.router, prefix="/api", tags=["timetables"])


def run():
    uvicorn.run("schoolboard.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
