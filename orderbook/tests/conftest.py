"""Shared test fixtures."""

import json
import sqlite3
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
import yaml

from orderbook.config.schema import FetchConfig, TrackerConfig, UpstreamConfig
from orderbook.storage.database import connect, run_migrations

TEST_URL = "https://test-orderbook.example.com/orderBook"


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path) -> sqlite3.Connection:
    conn = connect(db_path)
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def config(db_path: Path) -> TrackerConfig:
    """Config pointed at the test endpoint with instant retries."""
    return TrackerConfig(
        upstream=UpstreamConfig(url=TEST_URL),
        fetch=FetchConfig(retry_base_delay_ms=0, collection_timeout_seconds=5),
        ops={"db_path": str(db_path)},
    )


@pytest.fixture
def config_yaml_path(tmp_path: Path, db_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "upstream": {"url": TEST_URL},
        "fetch": {"retry_base_delay_ms": 0, "max_attempts": 2},
        "ops": {"db_path": str(db_path), "interval_seconds": 60},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def make_order(order_id: str, price="1.5", size="10", funds="15", user="alice") -> dict:
    return {
        "id": order_id,
        "price": price,
        "size": size,
        "funds": funds,
        "userShortName": user,
    }


@pytest.fixture
def order() -> Callable[..., dict]:
    return make_order


@pytest.fixture
def book_responder() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    """Build a respx side effect serving pages per side.

    ``pages`` maps side -> list of pages (each a list of order dicts). A side
    mapped to an int is answered with that HTTP status instead.
    """

    def _build(pages: dict) -> Callable[[httpx.Request], httpx.Response]:
        def _respond(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            side_pages = pages.get(body["side"], [])
            if isinstance(side_pages, int):
                return httpx.Response(side_pages)
            index = body["currentPage"] - 1
            data = side_pages[index] if index < len(side_pages) else []
            return httpx.Response(
                200,
                json={
                    "data": data,
                    "totalPage": len(side_pages),
                    "totalCount": sum(len(p) for p in side_pages),
                },
            )

        return _respond

    return _build
