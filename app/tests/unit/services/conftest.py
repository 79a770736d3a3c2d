import asyncio
import json

import pytest

from schemas.events import WatchEvent, WatchEventType
from schemas.facts import HostFact, WorkloadFact
from schemas.metadata import ResourceMeta, WorkloadMeta
from services.errors import StreamTerminated
from services.fact_store.memory import InMemoryFactStore
from services.transaction_manager import TransactionManager
from templates import env as cypher_env


def pod(name, *, namespace="default", version=None, **spec):
    meta = {"name": name, "namespace": namespace}
    if version is not None:
        meta["resourceVersion"] = str(version)
    obj = {"metadata": meta}
    if spec:
        obj["spec"] = spec
    return obj


def node(name, *, version=None, pod_cidr=None):
    meta = {"name": name}
    if version is not None:
        meta["resourceVersion"] = str(version)
    obj = {"metadata": meta, "spec": {}}
    if pod_cidr is not None:
        obj["spec"]["podCIDR"] = pod_cidr
    return obj


def event(kind, obj):
    return WatchEvent(type=WatchEventType(kind), object=obj)


def workload(name, *, namespace="default", node_name=None):
    return WorkloadFact(
        metadata=WorkloadMeta(name=name, namespace=namespace),
        spec={"node_name": node_name},
    )


def host(name, *, pod_cidr=None):
    return HostFact(metadata=ResourceMeta(name=name), spec={"pod_cidr": pod_cidr})


class RecordingSink:
    def __init__(self):
        self.deltas = []

    def publish(self, delta):
        self.deltas.append(delta)


class FailingStore(InMemoryFactStore):
    """Fails every batch that touches a fact named ``boom``."""

    def __init__(self):
        super().__init__()
        self.rollbacks = 0
        self.fail_prepare = False

    async def prepare(self):
        if self.fail_prepare:
            raise ConnectionError("store unreachable")
        await super().prepare()

    async def apply_updates(self, updates):
        for update in updates:
            if update.fact.metadata.name == "boom":
                raise RuntimeError("constraint violated")
            await super().apply_updates([update])

    async def rollback(self):
        self.rollbacks += 1
        await super().rollback()


class SlowStore(InMemoryFactStore):
    """Yields to the event loop between updates and records the call order."""

    def __init__(self):
        super().__init__()
        self.log = []

    async def begin_transaction(self):
        self.log.append("begin")
        await asyncio.sleep(0)
        await super().begin_transaction()

    async def apply_updates(self, updates):
        for update in updates:
            self.log.append(f"apply:{update.fact.metadata.name}")
            await asyncio.sleep(0)
            await super().apply_updates([update])

    async def commit(self):
        self.log.append("commit")
        await asyncio.sleep(0)
        return await super().commit()


class FakeStream:
    def __init__(self, events, *, terminate_with=None):
        self.events = list(events)
        self.terminate_with = terminate_with

    async def _iterate(self):
        for item in self.events:
            yield item
        if self.terminate_with is not None:
            raise StreamTerminated("/api/v1/pods", self.terminate_with)

    def __aiter__(self):
        return self._iterate()


class FakeGraphProxy:
    """Keeps fact payloads in a dict and answers the rendered fact queries."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.nodes: dict[str, str] = {}
        self.closed = False
        self.fail = False

    @staticmethod
    def _label(cypher):
        return cypher.split(":", 1)[1].split(" ", 1)[0].split(")", 1)[0]

    def _execute(self, cypher, params):
        if cypher.lstrip().startswith("CREATE CONSTRAINT"):
            return []
        if cypher.lstrip().startswith("MATCH"):
            prefix = f"{self._label(cypher)}:"
            return [
                {"payload": payload}
                for key, payload in sorted(self.nodes.items())
                if key.startswith(prefix)
            ]
        key = params["key"]
        previous = self.nodes.get(key)
        if "payload" in params:
            self.nodes[key] = params["payload"]
        else:
            self.nodes.pop(key, None)
        return [{"previous": previous}]

    async def run_query(self, cypher, params=None, *, write=True):
        self.calls.append((cypher, params))
        return self._execute(cypher, params or {})

    async def run_queries(self, cyphers, params_list=None, *, write=True):
        cyphers = list(cyphers)
        params_list = list(params_list or [{}] * len(cyphers))
        self.calls.append((cyphers, params_list))
        if self.fail:
            raise RuntimeError("transaction aborted")
        before = dict(self.nodes)
        try:
            return [self._execute(c, p) for c, p in zip(cyphers, params_list)]
        except Exception:
            self.nodes = before
            raise

    async def close(self):
        self.closed = True

    def payload(self, key):
        return json.loads(self.nodes[key])


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def store():
    return InMemoryFactStore()


@pytest.fixture()
def manager(store, sink):
    return TransactionManager(store, sink)


@pytest.fixture()
def graph_proxy():
    return FakeGraphProxy()


@pytest.fixture()
def jinja_env():
    return cypher_env


@pytest.fixture()
def make_pod():
    return pod


@pytest.fixture()
def make_node():
    return node


@pytest.fixture()
def make_event():
    return event


@pytest.fixture()
def make_workload():
    return workload


@pytest.fixture()
def make_host():
    return host


@pytest.fixture()
def fake_stream():
    return FakeStream


@pytest.fixture()
def failing_store():
    return FailingStore()


@pytest.fixture()
def slow_store():
    return SlowStore()
