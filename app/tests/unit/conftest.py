import os
import pytest


@pytest.fixture(scope="session", autouse=True)
def unit_test_env():
    """Default environment for unit tests."""
    defaults = {
        "NAMESPACE": "default",
        "FACT_STORE_BACKEND": "memory",
        "NEO4J_URI": "bolt://example.com",
        "NEO4J_USER": "neo4j",
        "NEO4J_PASSWORD": "pass",
        "NEO4J_DB": "neo4j",
        "KUBE_API_URL": "https://kube.example.com",
        "KUBE_TOKEN": "x",
    }
    os.environ.update(defaults)
