"""
OrderKaro API routes.

Endpoints that touch the database are plain `def` functions so FastAPI runs
them on its thread pool; the rest are `async def`.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse

from orderkaro.auth import bearer_token, get_current_user, require_admin
from orderkaro.client import TABLES
from orderkaro.errors import ErrorKind, RemoteError, validation_error
from orderkaro.schemas import (
    AddressCreate,
    AddressOut,
    AddressUpdate,
    CartAddRequest,
    CartLineOut,
    CartOut,
    CartUpdateRequest,
    CategoryOut,
    ForgotPasswordRequest,
    LoginRequest,
    MessageOut,
    NotificationOut,
    OrderOut,
    PasswordUpdateRequest,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    ProfileUpdateRequest,
    RegisterRequest,
    SessionOut,
    UserOut,
    VerifyOtpRequest,
)
from orderkaro.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

GENERIC_RECOVERY_MESSAGE = "If an account exists for this email, a verification code has been sent."


def get_services(request: Request) -> Services:
    return request.app.state.services


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# HEALTH & DIAGNOSTICS
# ============================================================================

@router.get("/health")
async def health(services: Services = Depends(get_services)):
    """Liveness check; never touches the database."""
    return {
        "status": "ok",
        "timestamp": _timestamp(),
        "environment": services.settings.environment,
        "message": "OrderKaro API is healthy",
    }


@router.get("/ping")
async def ping(services: Services = Depends(get_services)):
    """
    Time a lightweight database round trip.

    Returns:
    - success and duration (ms); 500 with the error message on failure
    """
    start = time.perf_counter()
    try:
        await asyncio.wait_for(
            asyncio.to_thread(services.data.ping),
            timeout=services.settings.health_ping_timeout,
        )
    except asyncio.TimeoutError:
        return JSONResponse(status_code=500, content={
            "success": False,
            "message": f"Ping timed out after {services.settings.health_ping_timeout}s",
            "duration": round((time.perf_counter() - start) * 1000),
        })
    except RemoteError as error:
        return JSONResponse(status_code=500, content={
            "success": False,
            "message": error.message,
            "code": error.code,
            "duration": round((time.perf_counter() - start) * 1000),
        })
    return {"success": True, "duration": round((time.perf_counter() - start) * 1000)}


@router.get("/db-status")
def db_status(services: Services = Depends(get_services)):
    """Connection diagnostics: table presence, monitor stats, cache and setup state."""
    database: Dict[str, Any] = {"connected": True, "tables": {}, "error": None}
    try:
        database["tables"] = {name: services.data.table_exists(name) for name in TABLES}
    except RemoteError as error:
        logger.warning("Database status check failed: %s", error.message)
        database.update(connected=False, error=error.message)

    return {
        "timestamp": _timestamp(),
        "environment": services.settings.monitor_environment,
        "database": database,
        "monitor": services.monitor.get_stats(),
        "cache": services.cache.stats(),
        "initialization": services.bootstrap.state,
    }


@router.post("/db-status/reinitialize")
async def reinitialize_database(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Retry database setup after a failed startup (admin)."""
    await services.bootstrap.retry()
    return services.bootstrap.state


@router.get("/auth-status")
def auth_status(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
):
    user = None
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            try:
                user = services.auth.get_session(parts[1])
            except RemoteError as error:
                if error.kind is not ErrorKind.AUTH:
                    raise

    return {
        "success": True,
        "is_authenticated": user is not None,
        "user": user,
        "timestamp": _timestamp(),
    }


# ============================================================================
# AUTH
# ============================================================================

def _start_session(services: Services, session, background_tasks: BackgroundTasks, message: str):
    user_id = session.user["id"]
    background_tasks.add_task(services.account_setup.run, user_id)
    services.notifications.for_audience(user_id).success(message)
    return session.to_dict()


@router.post("/auth/register", response_model=SessionOut, status_code=201)
def register(
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    session = services.auth.sign_up(body.name, body.email, body.password)
    return _start_session(services, session, background_tasks, "Registration successful")


@router.post("/auth/login", response_model=SessionOut)
def login(
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    session = services.auth.sign_in(body.email, body.password)
    return _start_session(services, session, background_tasks, "Login successful")


@router.post("/auth/logout", response_model=MessageOut)
def logout(
    token: str = Depends(bearer_token),
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.auth.sign_out(token)
    services.notifications.discard(user["id"])
    services.account_setup.forget(user["id"])
    return {"message": "Logged out successfully"}


@router.post("/auth/forgot-password", response_model=MessageOut)
def forgot_password(body: ForgotPasswordRequest, services: Services = Depends(get_services)):
    """
    Issue a one-time recovery code.

    The response is identical whether or not the email is registered.
    """
    code = services.auth.reset_password_for_email(body.email)
    if code is not None and not services.settings.is_production:
        # No mail transport; development builds log the code instead
        logger.info("Recovery code for %s: %s", body.email, code)
    return {"message": GENERIC_RECOVERY_MESSAGE}


@router.post("/auth/verify-otp", response_model=SessionOut)
def verify_otp(
    body: VerifyOtpRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    session = services.auth.verify_otp(body.email, body.code)
    return _start_session(services, session, background_tasks, "Code verified")


@router.put("/auth/password", response_model=MessageOut)
def update_password(
    body: PasswordUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    if body.password != body.confirm_password:
        raise validation_error("Passwords do not match")
    services.auth.update_password(user["id"], body.password)
    services.notifications.for_audience(user["id"]).success("Password updated successfully")
    return {"message": "Password updated successfully"}


# ============================================================================
# CATALOGUE
# ============================================================================

@router.get("/categories", response_model=List[CategoryOut])
def get_categories(services: Services = Depends(get_services)):
    return services.products.list_categories()


@router.get("/products", response_model=List[ProductOut])
def get_products(
    category_id: Optional[int] = Query(None, description="Filter by category id"),
    min_price: Optional[float] = Query(None, ge=0, description="Lowest price to include"),
    max_price: Optional[float] = Query(None, ge=0, description="Highest price to include"),
    search: Optional[str] = Query(None, description="Substring of the product name"),
    sort: str = Query("newest", description="newest, price_asc, price_desc or name"),
    services: Services = Depends(get_services),
):
    """
    Get products with optional filtering.

    Query Parameters:
    - category_id, min_price, max_price, search: combined with AND
    - sort: result order
    """
    return services.products.list_products(category_id, min_price, max_price, search, sort)


@router.get("/products/search/{keyword}", response_model=List[ProductOut])
def search_products(keyword: str, services: Services = Depends(get_services)):
    return services.products.search(keyword)


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, services: Services = Depends(get_services)):
    """
    Get a single product by ID.

    Raises:
    - 404 if product not found
    """
    return services.products.get_product(product_id)


@router.get("/products/{product_id}/related", response_model=List[ProductOut])
def get_related_products(product_id: int, services: Services = Depends(get_services)):
    return services.products.related_products(product_id)


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(
    body: ProductCreate,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.products.create(admin["id"], body.model_dump())


@router.put("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    body: ProductUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.products.update(admin["id"], product_id, body.model_dump(exclude_unset=True))


@router.delete("/products/{product_id}", response_model=MessageOut)
def delete_product(
    product_id: int,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.products.delete(admin["id"], product_id)
    return {"message": "Product removed"}


# ============================================================================
# CART
# ============================================================================

@router.get("/cart", response_model=CartOut)
def get_cart(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return services.cart.get_cart(user["id"])


@router.post("/cart", response_model=CartLineOut)
def add_to_cart(
    body: CartAddRequest,
    response: Response,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Add a product to the cart.

    Returns 201 with the new line, or 200 when an existing line was
    incremented.
    """
    line, created = services.cart.add(user["id"], body.product_id, body.quantity)
    if created:
        response.status_code = 201
    return line


@router.delete("/cart", response_model=MessageOut)
def clear_cart(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    services.cart.clear(user["id"])
    return {"message": "Cart cleared"}


@router.put("/cart/{item_id}")
def update_cart_item(
    item_id: int,
    body: CartUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    line = services.cart.update_quantity(user["id"], item_id, body.quantity)
    if line is None:
        return {"message": "Item removed from cart"}
    return CartLineOut(**line)


@router.delete("/cart/{item_id}", response_model=MessageOut)
def remove_cart_item(
    item_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.cart.remove(user["id"], item_id)
    return {"message": "Item removed from cart"}


# ============================================================================
# PROFILE, ADDRESSES & ORDERS
# ============================================================================

@router.get("/profile", response_model=UserOut)
def get_profile(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return services.profile.get_profile(user["id"])


@router.put("/profile", response_model=UserOut)
def update_profile(
    body: ProfileUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.profile.update_profile(user["id"], body.name, body.email, body.password)


@router.get("/profile/addresses", response_model=List[AddressOut])
def get_addresses(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return services.addresses.list(user["id"])


@router.post("/profile/addresses", response_model=AddressOut, status_code=201)
def add_address(
    body: AddressCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.addresses.add(user["id"], body.model_dump())


@router.put("/profile/addresses/{address_id}", response_model=AddressOut)
def update_address(
    address_id: int,
    body: AddressUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.addresses.update(user["id"], address_id, body.model_dump(exclude_unset=True))


@router.delete("/profile/addresses/{address_id}", response_model=MessageOut)
def delete_address(
    address_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.addresses.delete(user["id"], address_id)
    return {"message": "Address removed"}


@router.put("/profile/addresses/{address_id}/default", response_model=AddressOut)
def set_default_address(
    address_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.addresses.set_default(user["id"], address_id)


@router.get("/profile/orders", response_model=List[OrderOut])
def get_orders(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    return services.orders.history(user["id"])


@router.get("/profile/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.orders.details(user["id"], order_id)


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@router.get("/notifications", response_model=List[NotificationOut])
def get_notifications(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    """Active notifications for the user, followed by service-wide ones."""
    own = services.notifications.for_audience(user["id"]).active()
    system = services.notifications.system.active()
    return [n.to_dict() for n in own + system]


@router.delete("/notifications", response_model=MessageOut)
def dismiss_notifications(user: Dict[str, Any] = Depends(get_current_user), services: Services = Depends(get_services)):
    services.notifications.for_audience(user["id"]).dismiss_all()
    return {"message": "Notifications dismissed"}


@router.delete("/notifications/errors", response_model=MessageOut)
def dismiss_error_notifications(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.notifications.for_audience(user["id"]).dismiss_errors()
    return {"message": "Error notifications dismissed"}
