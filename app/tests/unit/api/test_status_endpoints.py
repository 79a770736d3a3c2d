import pytest
from fastapi.testclient import TestClient

from main import create_app
import api.status as status_module
from schemas.facts import HostFact, Relation
from schemas.metadata import ResourceMeta
from services.errors import StoreNotReady


class DummyManager:
    def __init__(self, facts=None, ready=True):
        self.facts = facts or {}
        self.ready = ready
        self.calls = []

    async def snapshot(self, relation=None):
        self.calls.append(relation)
        if not self.ready:
            raise StoreNotReady("fact store is uninitialized")
        return {relation: self.facts.get(relation, [])}


class DummyService:
    def __init__(self, manager):
        self.manager = manager

    def status(self):
        return {
            "state": "ready",
            "commits": 4,
            "loops": {
                "hosts": {
                    "received": 5,
                    "committed": 3,
                    "skipped": 1,
                    "failed": 0,
                    "stale": 1,
                    "running": True,
                    "terminated_reason": None,
                }
            },
        }


@pytest.fixture()
def client(monkeypatch):
    manager = DummyManager(
        {
            Relation.HOST: [
                HostFact(metadata=ResourceMeta(name="n1"), spec={"pod_cidr": "10.0.0.0/24"}),
                HostFact(metadata=ResourceMeta(name="n2")),
            ]
        }
    )
    monkeypatch.setattr(
        status_module, "get_fact_sync_service", lambda: DummyService(manager)
    )
    app = create_app()
    return TestClient(app), manager


def test_health(client):
    c, _ = client
    resp = c.get("/v1/sys/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_state(client):
    c, _ = client
    resp = c.get("/v1/sys/state")
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "ready"
    assert body["commits"] == 4
    assert body["loops"]["hosts"]["committed"] == 3
    assert body["loops"]["hosts"]["terminatedReason"] is None


def test_facts(client):
    c, manager = client
    resp = c.get("/v1/facts/HostFact")
    assert resp.status_code == 200
    body = resp.json()
    assert body["relation"] == "HostFact"
    assert body["count"] == 2
    assert body["facts"][0] == {
        "metadata": {"name": "n1"},
        "spec": {"pod_cidr": "10.0.0.0/24"},
    }
    assert body["facts"][1]["spec"] == {}
    assert manager.calls == [Relation.HOST]


def test_facts_empty_relation(client):
    c, _ = client
    resp = c.get("/v1/facts/WorkloadFact")
    assert resp.status_code == 200
    assert resp.json()["count"] == 0


def test_facts_unknown_relation(client):
    c, _ = client
    resp = c.get("/v1/facts/ServiceFact")
    assert resp.status_code == 422


def test_facts_store_not_ready(client):
    c, manager = client
    manager.ready = False
    resp = c.get("/v1/facts/HostFact")
    assert resp.status_code == 503
