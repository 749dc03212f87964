from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
from sqlalchemy.exc import OperationalError

from app.api.routes import router, close_session, get_session
from app.canvas.errors import ContractViolation, FrameNotFoundError
from app.config import CORS_ORIGINS
from app.db.session import engine
from app.db.models import Base

app = FastAPI(
    title="Architecture Canvas State Service",
    version="0.1.0",
)

# ✅ Middleware FIRST
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ✅ Routes AFTER middleware
app.include_router(router)


@app.exception_handler(FrameNotFoundError)
async def frame_not_found(request: Request, exc: FrameNotFoundError):
    return JSONResponse(status_code=404, content={"status": "error", "message": str(exc)})


@app.exception_handler(ContractViolation)
async def contract_violation(request: Request, exc: ContractViolation):
    print(f"[API] ⚠️ Rejected request: {exc}")
    return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})


@app.on_event("startup")
def startup():
    retries = 5
    delay = 2

    for attempt in range(retries):
        try:
            Base.metadata.create_all(bind=engine)
            print("✅ Database connected")
            get_session().load()
            return
        except OperationalError:
            print(f"⏳ Waiting for database... ({attempt + 1}/{retries})")
            time.sleep(delay)

    # 🔴 DO NOT crash the app
    print("⚠️ Database not ready, running without persistence")


@app.on_event("shutdown")
def shutdown():
    close_session()
