import logging
import math
import os
from typing import Optional

import psycopg2
import psycopg2.extras
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from pydantic import BaseModel

from gomoto import app_context
from gomoto.app.routes.payments import cron_router, router as payments_router, seller_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("gomoto")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DATABASE_URL = os.getenv("DATABASE_URL")
DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "gomoto"),
    user=os.getenv("DB_USER", "gomoto"),
    password=os.getenv("DB_PASSWORD", "gomoto"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None


def get_conn():
    if DATABASE_URL:
        return psycopg2.connect(DATABASE_URL, connect_timeout=DB_CFG["connect_timeout"])
    return psycopg2.connect(**DB_CFG)


def get_user_by_id(user_id: str) -> Optional[CurrentUser]:
    conn = get_conn()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("SELECT id, email, full_name FROM users WHERE id = %s", (user_id,))
            row = cur.fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return CurrentUser(id=str(row["id"]), email=row.get("email"), full_name=row.get("full_name"))


def resolve_user_from_session_token(session_token: Optional[str]) -> Optional[CurrentUser]:
    """Return the user named by a signed session cookie, or ``None``."""

    if not session_token:
        return None
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    return get_user_by_id(str(subject))


app = FastAPI(title="Go-Moto Payments API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app_context.configure(
    get_conn=get_conn,
    get_current_user=resolve_user_from_session_token,
)

app.include_router(payments_router)
app.include_router(seller_router)
app.include_router(cron_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
