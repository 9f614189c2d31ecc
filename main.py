from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.firebase import initialize_firebase
from core.logger import setup_logging
from services.scheduler import start_scheduler, shutdown_scheduler
from api.v1 import payments, notifications

VERSION = "1.0.0"

setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize_firebase()
    start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(title="Milestone Payments", version=VERSION, lifespan=lifespan)

# Налаштування CORS (щоб фронтенд мав доступ)
origins = [o.strip() for o in settings.FRONTEND_ORIGIN.split(",") if o.strip()] or [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- ПІДКЛЮЧЕННЯ РОУТЕРІВ ---
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["Notifications"])


@app.get("/")
def read_root():
    return {"status": "ok", "version": VERSION}
