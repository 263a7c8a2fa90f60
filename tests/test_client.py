import pytest

from orderkaro.client import DataClient, RetryingPolicy
from orderkaro.config import Settings
from orderkaro.database import create_db_engine, engine_options, init_schema
from orderkaro.errors import ErrorKind, RemoteError
from orderkaro.retry import RetryBackoff


@pytest.fixture
def data():
    engine = create_db_engine("sqlite://")
    init_schema(engine)
    client = DataClient(engine)
    client.table("categories").insert([
        {"name": "Fruits", "description": "Fresh seasonal fruits"},
        {"name": "Dairy", "description": "Milk and eggs"},
    ])
    yield client
    engine.dispose()


def flaky(kind, failures):
    calls = {"count": 0}

    def attempt():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise RemoteError(kind, "flaky")
        return "ok"

    attempt.calls = calls
    return attempt


def test_filters_and_order(data):
    rows = data.table("categories").ilike("name", "%ui%").select()
    assert [r["name"] for r in rows] == ["Fruits"]

    ordered = data.table("categories").order("name", ascending=False).select()
    assert [r["name"] for r in ordered] == ["Fruits", "Dairy"]
    assert data.table("categories").count() == 2


def test_single_raises_not_found(data):
    with pytest.raises(RemoteError) as info:
        data.table("categories").eq("name", "Frozen").single()
    assert info.value.kind is ErrorKind.NOT_FOUND
    assert data.table("categories").eq("name", "Frozen").maybe_single() is None


def test_update_and_delete_require_a_filter(data):
    with pytest.raises(RemoteError) as info:
        data.table("categories").update({"description": ""})
    assert info.value.kind is ErrorKind.VALIDATION

    with pytest.raises(RemoteError):
        data.table("categories").delete()


def test_unknown_table_and_column(data):
    with pytest.raises(RemoteError):
        data.table("coupons")
    with pytest.raises(RemoteError):
        data.table("categories").eq("colour", "red").select()


def test_duplicate_insert_is_a_conflict(data):
    with pytest.raises(RemoteError) as info:
        data.table("categories").insert({"name": "Fruits", "description": "again"})
    assert info.value.kind is ErrorKind.CONFLICT


def test_transaction_rolls_back_on_error(data):
    with pytest.raises(RemoteError):
        with data.transaction() as tx:
            tx.table("categories").insert({"name": "Bakery", "description": "Bread"})
            tx.table("categories").insert({"name": "Dairy", "description": "duplicate"})
    assert data.table("categories").eq("name", "Bakery").maybe_single() is None


def test_params_are_stable_for_cache_keys(data):
    first = data.table("products").eq("category_id", 1).gte("price", 2).order("name").params()
    second = data.table("products").gte("price", 2).eq("category_id", 1).order("name").params()
    assert first == second


def test_ping_and_table_exists(data):
    assert data.ping() is True
    assert data.table_exists("cart_items") is True
    assert data.table_exists("coupons") is False


def test_retrying_policy_retries_reads_on_network_errors():
    policy = RetryingPolicy(RetryBackoff(max_attempts=3), sleep=lambda delay: None)
    attempt = flaky(ErrorKind.NETWORK, 2)
    assert policy.run(attempt, "select") == "ok"
    assert attempt.calls["count"] == 3


def test_retrying_policy_never_retries_writes():
    policy = RetryingPolicy(RetryBackoff(max_attempts=3), sleep=lambda delay: None)
    attempt = flaky(ErrorKind.NETWORK, 1)
    with pytest.raises(RemoteError):
        policy.run(attempt, "insert")
    assert attempt.calls["count"] == 1


def test_retrying_policy_skips_non_transient_errors():
    policy = RetryingPolicy(RetryBackoff(max_attempts=3), sleep=lambda delay: None)
    attempt = flaky(ErrorKind.VALIDATION, 1)
    with pytest.raises(RemoteError):
        policy.run(attempt, "select")
    assert attempt.calls["count"] == 1


def test_query_timeout_becomes_statement_timeout_on_postgres():
    options = engine_options("postgresql+psycopg2://orderkaro@localhost/orderkaro", query_timeout=25.0)
    assert options["connect_args"] == {"options": "-c statement_timeout=25000"}
    assert options["pool_timeout"] == 25.0
    assert options["pool_pre_ping"] is True


def test_query_timeout_becomes_sqlite_lock_wait():
    options = engine_options("sqlite:///orderkaro.db", query_timeout=45.0)
    assert options["connect_args"] == {"check_same_thread": False, "timeout": 45.0}
    assert "poolclass" not in options


def test_settings_pick_query_timeout_per_environment():
    assert Settings().query_timeout == 25.0
    assert Settings(environment="production", jwt_secret_key="prod-secret").query_timeout == 45.0


def test_no_timeout_leaves_driver_defaults():
    assert "connect_args" not in engine_options("postgresql+psycopg2://orderkaro@localhost/orderkaro")
    assert engine_options("sqlite://")["connect_args"] == {"check_same_thread": False}
