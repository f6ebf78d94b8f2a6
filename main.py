import hashlib
import hmac
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

import database
from bookings import (
    cancel_booking,
    check_availability,
    create_booking,
    get_booking,
    list_bookings,
    to_object_id,
    update_booking_status,
)
from config import settings
from database import create_document, ensure_indexes, get_db, get_documents, utcnow
from schemas import Admin as AdminSchema, BookingCreate, BookingStatus, Session as SessionSchema, User as UserSchema

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

AUTH_ERROR = "Please authenticate."


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
        logger.info("MongoDB indexes ensured")
    yield


app = FastAPI(title="Hotel Booking API", version=settings.service_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping

def _format_error(err: Dict[str, Any]) -> str:
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc)
    if err.get("type") in ("literal_error", "enum"):
        msg = f"invalid enum value '{err.get('input')}'"
    elif err.get("ctx", {}).get("error") is not None:
        msg = str(err["ctx"]["error"])
    else:
        msg = err.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def _validation_response(errors: List[Dict[str, Any]]) -> JSONResponse:
    messages = [_format_error(e) for e in errors]
    return JSONResponse(
        status_code=400,
        content={
            "detail": "; ".join(messages),
            "errors": [{"field": ".".join(str(p) for p in e.get("loc", ())), "message": m} for e, m in zip(errors, messages)],
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _validation_response(list(exc.errors()))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# Helpers

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.sha256(f"{password}{salt}{settings.password_salt}".encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not password or not stored or "$" not in stored:
        return False
    salt = stored.split("$", 1)[0]
    return hmac.compare_digest(hash_password(password, salt), stored)


def user_safe(u: Dict[str, Any]) -> Dict[str, Any]:
    if not u:
        return u
    u = {**u}
    u.pop("passwordHash", None)
    u["id"] = str(u.pop("_id"))
    for key in ("createdAt", "updatedAt"):
        if hasattr(u.get(key), "isoformat"):
            u[key] = u[key].isoformat()
    return u


def issue_token(db: Database, subject_id: Any, scope: str) -> str:
    token = secrets.token_urlsafe(32)
    session_doc = SessionSchema(
        token=token,
        subject_id=str(subject_id),
        scope=scope,
        expires_at=utcnow() + timedelta(hours=settings.session_ttl_hours),
    ).model_dump(by_alias=True)
    db["session"].insert_one(session_doc)
    return token


def _session_for(authorization: Optional[str], db: Database, scope: str) -> Dict[str, Any]:
    # One message for every failure so callers can't tell missing from invalid
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail=AUTH_ERROR)
    token = authorization[len("bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail=AUTH_ERROR)
    session = db["session"].find_one({"token": token, "scope": scope, "expiresAt": {"$gt": utcnow()}})
    if not session:
        raise HTTPException(status_code=401, detail=AUTH_ERROR)
    return session


def get_current_user(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)):
    session = _session_for(authorization, db, "user")
    user = db["user"].find_one({"_id": to_object_id(session["subjectId"])})
    if not user:
        raise HTTPException(status_code=401, detail=AUTH_ERROR)
    return user_safe(user)


def get_current_admin(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)):
    session = _session_for(authorization, db, "admin")
    admin = db["admin"].find_one({"_id": to_object_id(session["subjectId"])})
    if not admin:
        raise HTTPException(status_code=401, detail=AUTH_ERROR)
    return {"id": str(admin["_id"]), "username": admin["username"]}


# Root and health
@app.get("/")
def read_root():
    return {"name": settings.service_name, "status": "ok"}


@app.get("/health")
def health():
    response = {
        "backend": "running",
        "database": "not available",
        "database_url": "set" if settings.database_url else "not set",
        "database_name": "set" if settings.database_name else "not set",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "connected"
    except Exception as e:
        logger.warning(f"Health check could not reach MongoDB: {e}")
        response["database"] = f"error: {str(e)[:80]}"
    return response


# Admin auth
class AdminLoginBody(BaseModel):
    username: str
    password: str


class AdminSetupBody(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


@app.post("/admin/login")
def admin_login(body: AdminLoginBody, db: Database = Depends(get_db)):
    admin = db["admin"].find_one({"username": body.username})
    if not admin or not verify_password(body.password, admin.get("passwordHash")):
        logger.warning(f"Failed admin login for '{body.username}'")
        raise HTTPException(status_code=401, detail="Invalid login credentials")
    logger.info(f"Admin '{body.username}' logged in")
    return {"token": issue_token(db, admin["_id"], "admin")}


@app.post("/admin/setup", status_code=201)
def admin_setup(body: Optional[AdminSetupBody] = None, db: Database = Depends(get_db)):
    if db["admin"].find_one({}):
        raise HTTPException(status_code=400, detail="Admin already exists")
    username = (body and body.username) or settings.default_admin_username
    password = (body and body.password) or settings.default_admin_password
    create_document(db, "admin", AdminSchema(username=username, password_hash=hash_password(password)))
    logger.info(f"Initial admin '{username}' created")
    return {"message": "Initial admin created successfully"}


# User auth
class RegisterBody(BaseModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=1)


def _create_user(db: Database, body: RegisterBody) -> Dict[str, Any]:
    email = body.email.lower()
    existing = db["user"].find_one({"$or": [{"email": email}, {"username": body.username}]})
    if existing:
        raise HTTPException(status_code=400, detail="User already exists")
    user_doc = UserSchema(
        username=body.username,
        email=email,
        password_hash=hash_password(body.password),
    )
    return create_document(db, "user", user_doc)


@app.post("/users/register", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db)):
    user = _create_user(db, body)
    logger.info(f"User registered: {user['username']}")
    return {"token": issue_token(db, user["_id"], "user"), "user": user_safe(user)}


@app.post("/users/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("passwordHash")):
        logger.warning(f"Failed user login for '{body.email}'")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"token": issue_token(db, user["_id"], "user"), "user": user_safe(user)}


@app.get("/users/me")
def me(user=Depends(get_current_user)):
    return user


# User management (staff only)
@app.post("/users", status_code=201)
def create_user(body: RegisterBody, admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    return user_safe(_create_user(db, body))


@app.get("/users")
def list_users(admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    return [user_safe(u) for u in get_documents(db, "user")]


@app.get("/users/{user_id}")
def get_user(user_id: str, admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    u = db["user"].find_one({"_id": to_object_id(user_id)})
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return user_safe(u)


@app.put("/users/{user_id}")
def update_user(user_id: str, body: UserUpdate, admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    u = db["user"].find_one({"_id": to_object_id(user_id)})
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    update: Dict[str, Any] = {}
    if body.username is not None:
        update["username"] = body.username
    if body.email is not None:
        update["email"] = body.email.lower()
    if body.password is not None:
        update["passwordHash"] = hash_password(body.password)
    clash = [{k: update[k]} for k in ("username", "email") if k in update]
    if clash and db["user"].find_one({"_id": {"$ne": u["_id"]}, "$or": clash}):
        raise HTTPException(status_code=400, detail="User already exists")
    if update:
        update["updatedAt"] = utcnow()
        db["user"].update_one({"_id": u["_id"]}, {"$set": update})
    return user_safe(db["user"].find_one({"_id": u["_id"]}))


@app.delete("/users/{user_id}")
def delete_user(user_id: str, admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    result = db["user"].delete_one({"_id": to_object_id(user_id)})
    if not result.deleted_count:
        raise HTTPException(status_code=404, detail="User not found")
    db["session"].delete_many({"subjectId": user_id, "scope": "user"})
    logger.info(f"User {user_id} deleted by admin '{admin['username']}'")
    return {"deleted": True}


# Bookings
class StatusUpdate(BaseModel):
    status: BookingStatus


@app.post("/bookings", status_code=201)
def create_booking_endpoint(body: BookingCreate, db: Database = Depends(get_db)):
    return create_booking(db, body)


@app.get("/bookings")
def list_bookings_endpoint(admin=Depends(get_current_admin), db: Database = Depends(get_db)):
    return list_bookings(db)


@app.get("/bookings/mine")
def my_bookings(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return list_bookings(db, email=user["email"])


@app.get("/bookings/check-availability")
def check_availability_endpoint(
    check_in: Optional[str] = Query(None, alias="checkIn"),
    check_out: Optional[str] = Query(None, alias="checkOut"),
    room_type: Optional[str] = Query(None, alias="roomType"),
    db: Database = Depends(get_db),
):
    return check_availability(db, room_type, check_in, check_out)


@app.get("/bookings/{booking_id}")
def get_booking_endpoint(booking_id: str, db: Database = Depends(get_db)):
    return get_booking(db, booking_id)


@app.put("/bookings/{booking_id}/status")
def update_status_endpoint(
    booking_id: str,
    body: StatusUpdate,
    admin=Depends(get_current_admin),
    db: Database = Depends(get_db),
):
    return update_booking_status(db, booking_id, body.status, enforce=settings.enforce_status_transitions)


@app.post("/bookings/{booking_id}/cancel")
def cancel_booking_endpoint(booking_id: str, db: Database = Depends(get_db)):
    return cancel_booking(db, booking_id, enforce=settings.enforce_status_transitions)


if __name__ == "__main__":
    import os

    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
