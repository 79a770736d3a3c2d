import os
from pathlib import Path

import pytest
import pytest_asyncio
from dotenv import load_dotenv


@pytest.fixture(scope="session", autouse=True)
def integration_env():
    """Load .env and set docker service defaults."""
    env_path = Path(__file__).resolve().parents[2] / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)

    os.environ.setdefault("NEO4J_URI", "bolt://localhost:7687")
    os.environ.setdefault("NEO4J_USER", "neo4j")
    os.environ.setdefault("NEO4J_PASSWORD", "test")
    os.environ.setdefault("NEO4J_DB", "neo4j")


@pytest_asyncio.fixture
async def graph_proxy(integration_env):
    from services.graph_proxy import GraphProxy

    proxy = GraphProxy(
        uri=os.environ["NEO4J_URI"],
        user=os.environ["NEO4J_USER"],
        password=os.environ["NEO4J_PASSWORD"],
        database=os.environ.get("NEO4J_DB"),
    )
    yield proxy
    await proxy.close()
