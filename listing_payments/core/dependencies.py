from functools import lru_cache
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from listing_payments.core.database import db_manager
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from redis.asyncio import Redis

from listing_payments.core.config import settings
from listing_payments.models.institution_model import Institution, InstitutionAdmin
from listing_payments.schemas import token_schema
from listing_payments.repository.institution_repository import institution_repository
from listing_payments.modules.payment.activation import ActivationEngine
from listing_payments.modules.payment.context_cache import PaymentContextCache
from listing_payments.modules.payment.exceptions import InstitutionNotFound
from listing_payments.modules.payment.gateway import RazorpayClient
from listing_payments.modules.payment.notifications import PaymentNotifier
from listing_payments.modules.payment.pricing import PricingEngine
from listing_payments.modules.payment.service import OrderService
from listing_payments.modules.payment.verification import PollVerificationHandler
from listing_payments.modules.payment.webhook import WebhookHandler

# Tokens are issued by the institution auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/institution/token")

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in db_manager.get_db_session():
        yield session

# --- Institution Admin Authentication ---

async def get_current_admin(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> InstitutionAdmin:
    """
    Dependency to get the current institution admin from a JWT token.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = token_schema.TokenData(
            sub=payload.get("sub"),
            institution_id=payload.get("institution_id"),
            name=payload.get("name"),
        )
        if token_data.sub is None:
            raise credentials_exception
        admin_id = int(token_data.sub)
    except (JWTError, ValueError):
        raise credentials_exception

    admin = await institution_repository.get_admin(db, admin_id=admin_id)
    if admin is None:
        raise credentials_exception
    return admin

async def get_current_institution(
    admin: InstitutionAdmin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Institution:
    """
    Dependency resolving the institution the authenticated admin manages.
    """
    if not admin.institution_id:
        raise InstitutionNotFound()
    institution = await institution_repository.get_institution(db, admin.institution_id)
    if institution is None:
        raise InstitutionNotFound()
    return institution

# --- Payment components, wired from settings ---

@lru_cache
def get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def get_context_cache() -> PaymentContextCache:
    return PaymentContextCache(get_redis(), ttl_seconds=settings.PAYMENT_CONTEXT_TTL_SECONDS)

def get_activation_engine() -> ActivationEngine:
    return ActivationEngine()

def get_gateway() -> RazorpayClient:
    return RazorpayClient(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        api_base=settings.RAZORPAY_API_BASE,
        timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
    )

def get_order_service(
    context_cache: PaymentContextCache = Depends(get_context_cache),
    gateway: RazorpayClient = Depends(get_gateway),
    activation_engine: ActivationEngine = Depends(get_activation_engine),
) -> OrderService:
    return OrderService(
        pricing=PricingEngine(settings.PLAN_PRICES),
        gateway=gateway,
        context_cache=context_cache,
        activation_engine=activation_engine,
        notifier=PaymentNotifier(),
        currency=settings.PAYMENT_CURRENCY,
        free_listing_days=settings.FREE_LISTING_VALIDITY_DAYS,
    )

def get_webhook_handler(
    context_cache: PaymentContextCache = Depends(get_context_cache),
    activation_engine: ActivationEngine = Depends(get_activation_engine),
) -> WebhookHandler:
    return WebhookHandler(
        webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
        activation_engine=activation_engine,
        context_cache=context_cache,
        notifier=PaymentNotifier(),
    )

def get_poll_handler(
    context_cache: PaymentContextCache = Depends(get_context_cache),
    activation_engine: ActivationEngine = Depends(get_activation_engine),
) -> PollVerificationHandler:
    return PollVerificationHandler(
        key_secret=settings.RAZORPAY_KEY_SECRET,
        activation_engine=activation_engine,
        context_cache=context_cache,
        notifier=PaymentNotifier(),
    )
