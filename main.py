import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import database
from config import APP_ENV, CORS_ORIGINS, LOG_LEVEL
from database import create_document, ensure_indexes, get_db
from routers import client_roles, clients, lookouts, properties, referrals, tasks, threads, uploads
from schemas import Token, User, UserCreate, UserPublic
from security import create_access_token, get_current_user, hash_password, verify_password

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; database endpoints are unavailable")
    yield


# App & CORS
app = FastAPI(title="Brokerage Back Office API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------------
# Error handlers
# ----------------------------

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    logger.info("Duplicate key on %s %s: %s", request.method, request.url.path, exc.details)
    return JSONResponse(status_code=400, content={"detail": "Duplicate value for a unique field"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


for module in (clients, client_roles, properties, referrals, lookouts, tasks, threads, uploads):
    app.include_router(module.router)

# ----------------------------
# Basic routes
# ----------------------------
@app.get("/")
def read_root():
    return {"message": "Brokerage back office API"}


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": APP_ENV,
    }


@app.get("/api/health/maintenance")
def maintenance():
    return JSONResponse(
        status_code=503,
        content={
            "status": "maintenance",
            "message": "Service is under maintenance",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = getattr(db, 'name', 'unknown')
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response

# ----------------------------
# Auth endpoints
# ----------------------------
@app.post("/api/auth/register", response_model=UserPublic, status_code=201)
def register(user: UserCreate, db: Database = Depends(get_db)):
    email = str(user.email).lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, detail="Email already registered")
    doc = User(
        name=user.name,
        email=email,
        password_hash=hash_password(user.password),
        phone=user.phone,
        address=user.address,
        role=user.role if user.role in ["admin", "manager", "agent"] else "agent",
    ).model_dump()
    inserted = create_document(db, "user", doc)
    logger.info("User %s registered with role %s", inserted["_id"], doc["role"])
    return {
        "id": str(inserted["_id"]),
        "name": doc["name"],
        "email": doc["email"],
        "role": doc["role"],
    }


@app.post("/api/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": form_data.username.lower()})
    if not user or not verify_password(form_data.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=400, detail="Account is disabled")
    token = create_access_token(str(user["_id"]), user.get("role", "agent"))
    return {"access_token": token}


@app.get("/api/auth/me", response_model=UserPublic)
def me(current_user=Depends(get_current_user)):
    return {
        "id": current_user["id"],
        "name": current_user["name"],
        "email": current_user["email"],
        "role": current_user.get("role", "agent"),
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
