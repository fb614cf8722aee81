from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from listing_payments.modules.payment.api import router as payment_router
from listing_payments.core.database import db_manager
from listing_payments.core.dependencies import get_redis
from listing_payments.core.global_error_handler import register_global_exception_handlers
from listing_payments.core.config import settings
import logging

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Course Listing Payments API",
    description="Order creation and activation of paid and free course listings for institutions.",
    version="1.0.0"
)

# Register global exception handlers
register_global_exception_handlers(app)

@app.on_event("shutdown")
async def shutdown_event():
    """Close database and Redis connections on shutdown."""
    await db_manager.close()
    await get_redis().aclose()
    logger.info("Database engine and Redis client closed.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(payment_router, prefix="/api")

@app.get("/api/")
async def root():
    return {"message": "Course Listing Payments API is running"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}
