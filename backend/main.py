# backend/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import init_db
from services.errors import DomainError

# Router imports
from routes.cart import router as cart_router
from routes.offers import router as offers_router
from routes.orders import router as orders_router
from routes.returns import router as returns_router
from routes.payments import router as payments_router
from routes.shipping import router as shipping_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

def log_insecure_defaults() -> None:
    """Warn about settings that are only acceptable on a developer machine."""
    if not settings.SHIPROCKET_WEBHOOK_TOKEN:
        if settings.ENVIRONMENT == "development":
            logger.warning("SHIPROCKET_WEBHOOK_TOKEN is not set: carrier webhooks are accepted unauthenticated")
        else:
            logger.warning("SHIPROCKET_WEBHOOK_TOKEN is not set: carrier webhooks will be rejected")
    if settings.SECRET_KEY == "dev-secret-change-me":
        logger.warning("SECRET_KEY is the development default")

# Initialization
init_db()
log_insecure_defaults()

app = FastAPI(title="Storefront Checkout API", version="1.0.0")

# CORS Configuration
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every checkout failure leaves the API in the same shape
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind, "message": exc.message},
    )

# Router registration
app.include_router(cart_router)
app.include_router(offers_router)
app.include_router(orders_router)
app.include_router(returns_router)
app.include_router(payments_router)
app.include_router(shipping_router)

@app.get("/")
def read_root():
    return {"message": "Storefront Checkout API is running"}
