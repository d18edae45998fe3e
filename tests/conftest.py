import httpx
import pytest

from capture_control_mcp.core.audit import AuditLog
from capture_control_mcp.core.coordinator import Coordinator
from capture_control_mcp.core.dispatcher import Dispatcher
from capture_control_mcp.core.registry import AgentRegistry
from capture_control_mcp.core.store import CaptureStore
from capture_control_mcp.pipeline.capture_pipeline import CapturePipeline
from tests.fakes import FakeRunner, agent_handler


@pytest.fixture
def store(tmp_path):
    return CaptureStore(str(tmp_path / "data"))


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def audit(store):
    return AuditLog(str(store.audit_path))


@pytest.fixture
def pipeline(store, runner, audit):
    store.ensure_root()
    return CapturePipeline(store=store, runner=runner, log=lambda msg: None, audit=audit.append)


@pytest.fixture
def dispatcher():
    return Dispatcher(transport=httpx.MockTransport(agent_handler), log=lambda msg: None)


@pytest.fixture
def registry():
    return AgentRegistry()


@pytest.fixture
def coordinator(registry, dispatcher, pipeline, audit):
    return Coordinator(
        registry=registry,
        dispatcher=dispatcher,
        pipeline=pipeline,
        grace_seconds=0,
        log=lambda msg: None,
        audit=audit.append,
    )
