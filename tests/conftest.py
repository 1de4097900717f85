"""
Pytest configuration and fixtures for analytics-pipeline tests

This module provides shared fixtures for unit and integration tests.
Container-backed fixtures skip the test when Docker is not available.
"""
import os
import threading
from datetime import datetime, timezone
from typing import Generator

import psycopg
import pytest

from analytics_pipeline.core.models import MetricValue, ReportMessage, ReportRow
from analytics_pipeline.storage.connection import DatabaseConnectionPool, ensure_schema

POSTGRES_USER = "test_pipeline"
POSTGRES_PASSWORD = "test_password"
POSTGRES_DB = "test_analytics"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# MESSAGE FIXTURES
# =======================

def make_message(
    user_id: str = "user-1",
    property_id: str = "properties/1",
    rows: list[tuple[list[str], list[tuple[str, str]]]] | None = None,
    generated_at: datetime | None = None,
) -> ReportMessage:
    """Build a ReportMessage from (dimension values, [(metric name, value)]) tuples."""
    if rows is None:
        rows = [(["US"], [("activeUsers", "5"), ("sessions", "10")])]

    return ReportMessage(
        user_id=user_id,
        property_id=property_id,
        generated_at=generated_at or datetime(2025, 11, 17, 8, 30, tzinfo=timezone.utc),
        report_data=[
            ReportRow(
                dimension_values=dims,
                metric_values=[MetricValue(name=n, value=v) for n, v in metrics],
            )
            for dims, metrics in rows
        ],
    )


@pytest.fixture
def message_factory():
    """Expose make_message to tests"""
    return make_message


@pytest.fixture
def sample_message() -> ReportMessage:
    return make_message()


@pytest.fixture
def stop_event() -> threading.Event:
    return threading.Event()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with the pipeline schema applied
    """
    postgres_module = pytest.importorskip("testcontainers.postgres")

    container = postgres_module.PostgresContainer(
        image="postgres:16.2-alpine",
        username=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        dbname=POSTGRES_DB,
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool against the test container and create the tables

    Yields:
        Open DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=POSTGRES_DB,
        user=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        min_size=1,
        max_size=4,
        name="analytics-test",
    )
    pool.open()
    ensure_schema(pool)

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all pipeline tables before each test

    Returns:
        Open DatabaseConnectionPool over empty tables
    """
    with db_pool.get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE raw_analytics_data RESTART IDENTITY")
            cur.execute("TRUNCATE TABLE normalized_analytics_data RESTART IDENTITY")
            cur.execute("TRUNCATE TABLE analytics_processing_logs RESTART IDENTITY")
        conn.commit()

    return db_pool


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a raw psycopg connection for assertions

    Yields:
        psycopg Connection object
    """
    conninfo = (
        f"host={postgres_container.get_container_host_ip()} "
        f"port={postgres_container.get_exposed_port(5432)} "
        f"dbname={POSTGRES_DB} user={POSTGRES_USER} password={POSTGRES_PASSWORD}"
    )
    with psycopg.connect(conninfo) as conn:
        yield conn
        conn.rollback()


# =======================
# KAFKA FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def kafka_container():
    """
    Start Kafka container for queue integration tests

    Yields:
        KafkaContainer instance
    """
    kafka_module = pytest.importorskip("testcontainers.kafka")

    container = kafka_module.KafkaContainer(image="confluentinc/cp-kafka:7.6.0")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def kafka_bootstrap_servers(kafka_container) -> str:
    """
    Get Kafka bootstrap servers for a test

    Returns:
        Bootstrap servers connection string
    """
    return kafka_container.get_bootstrap_server()


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads config/test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
