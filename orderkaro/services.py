"""
Service container: builds every long-lived object once per application.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from orderkaro.auth import AuthClient
from orderkaro.bootstrap import AccountSetup, DatabaseBootstrap
from orderkaro.cache import QueryCache
from orderkaro.client import DataClient
from orderkaro.config import Settings
from orderkaro.controllers import (
    AddressController, CartController, OrderController, ProductController, ProfileController
)
from orderkaro.database import create_db_engine
from orderkaro.monitor import ConnectionMonitor
from orderkaro.notifications import NotificationCenter


@dataclass
class Services:
    settings: Settings
    engine: Engine
    data: DataClient
    cache: QueryCache
    notifications: NotificationCenter
    monitor: ConnectionMonitor
    auth: AuthClient
    bootstrap: DatabaseBootstrap
    account_setup: AccountSetup
    products: ProductController
    cart: CartController
    profile: ProfileController
    addresses: AddressController
    orders: OrderController


def build_services(settings: Settings, engine: Optional[Engine] = None) -> Services:
    if engine is None:
        engine = create_db_engine(settings.database_url, query_timeout=settings.query_timeout)

    data = DataClient(engine)
    cache = QueryCache(max_age=settings.cache_max_age)
    notifications = NotificationCenter()
    monitor = ConnectionMonitor(
        lambda: asyncio.to_thread(data.ping),
        notifier=notifications.system,
        environment=settings.monitor_environment,
        thresholds=settings.thresholds,
        ping_timeout=settings.health_ping_timeout,
    )
    data.monitor = monitor

    return Services(
        settings=settings,
        engine=engine,
        data=data,
        cache=cache,
        notifications=notifications,
        monitor=monitor,
        auth=AuthClient(data, settings.jwt_secret_key, settings.access_token_expire_days),
        bootstrap=DatabaseBootstrap(data, notifier=notifications.system, seed=settings.seed_sample_data),
        account_setup=AccountSetup(data, notifications),
        products=ProductController(data, notifications, cache),
        cart=CartController(data, notifications),
        profile=ProfileController(data, notifications),
        addresses=AddressController(data, notifications),
        orders=OrderController(data, notifications),
    )
