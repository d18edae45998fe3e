import asyncio

import pytest

from capture_control_mcp.core import coordinator as coordinator_module
from capture_control_mcp.core.errors import NoAgentsRegistered, NoCapturesToMerge, ToolInvocationFailed
from capture_control_mcp.core.models import CoordinatorState
from tests.fakes import write_raw

PKT_A = "1.000 10.0.0.1 10.0.0.2 tcp"
PKT_B = "2.000 10.0.0.3 10.0.0.4 udp"
PKT_C = "1.500 10.0.0.5 10.0.0.6 tcp"


def _register(coordinator, *names):
    for n in names:
        coordinator.register(n)


def _round(coordinator, store, files):
    asyncio.run(coordinator.start())
    for agent, packets in files.items():
        write_raw(store.raw_capture_path(agent), *packets)
    return asyncio.run(coordinator.stop())


def test_end_to_end_two_agents(coordinator, store):
    _register(coordinator, "scan1", "scan2")

    started = asyncio.run(coordinator.start())
    assert [r["status"] for r in started["results"]] == ["success", "success"]
    assert coordinator.state is CoordinatorState.CAPTURING

    write_raw(store.raw_capture_path("scan1"), PKT_A, PKT_B)
    write_raw(store.raw_capture_path("scan2"), PKT_C)

    out = asyncio.run(coordinator.stop())
    assert out["ok"] is True
    assert [r["status"] for r in out["results"]] == ["success", "success"]
    assert coordinator.state is CoordinatorState.IDLE

    # merged in timestamp order across both agents
    assert store.merged_path.read_text().splitlines() == [PKT_A, PKT_C, PKT_B]
    assert len(out["record"]) == 3
    assert "filter_status" not in out


def test_failed_agent_is_reported_not_raised(coordinator, store):
    _register(coordinator, "scan1", "down1")
    out = _round(coordinator, store, {"scan1": [PKT_A]})
    assert [r["status"] for r in out["results"]] == ["success", "failed"]
    assert len(out["record"]) == 1


def test_start_requires_agents(coordinator, audit):
    with pytest.raises(NoAgentsRegistered):
        asyncio.run(coordinator.start())
    events = audit.read_events(event="start")
    assert len(events) == 1 and events[0].success is False


def test_stop_without_captures_fails(coordinator, store):
    _register(coordinator, "scan1")
    asyncio.run(coordinator.start())

    with pytest.raises(NoCapturesToMerge) as exc:
        asyncio.run(coordinator.stop())

    assert not store.merged_path.exists()
    assert exc.value.details["results"] == [{"agent": "scan1", "status": "success"}]
    assert coordinator.state is CoordinatorState.IDLE


def test_start_clears_previous_round(coordinator, store, audit):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A]})
    assert store.merged_path.exists()

    asyncio.run(coordinator.start())
    assert store.raw_captures() == []
    assert not store.merged_path.exists()
    assert not store.decoded_path.exists()
    assert audit.read_events(event="clear")


def test_second_round_overwrites_merged(coordinator, store):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A]})
    out = _round(coordinator, store, {"scan1": [PKT_B]})

    assert store.merged_path.read_text().splitlines() == [PKT_B]
    assert len(list(store.root.glob("merged*"))) == 1
    assert len(out["record"]) == 1


def test_config_replaces_and_refilters(coordinator, store):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A, PKT_B]})

    first = asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))
    assert first["filter_status"] == "ok"
    assert store.filtered_path.read_text().splitlines() == [PKT_A]

    second = asyncio.run(coordinator.submit_config({"ip": "10.0.0.3"}))
    assert second["persisted"] is True
    assert second["filter_expression"] == "(ip.addr == 10.0.0.3)"
    assert store.filtered_path.read_text().splitlines() == [PKT_B]
    assert len(second["filtered_record"]) == 1
    assert store.load_config() == {"ip": "10.0.0.3"}


def test_empty_config_is_identity_filter(coordinator, store):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A, PKT_B]})

    asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))
    out = asyncio.run(coordinator.submit_config({}))

    assert out["filter_status"] == "ok"
    assert out["filter_expression"] == ""
    assert store.filtered_path.read_bytes() == store.merged_path.read_bytes()


def test_config_before_any_capture_only_persists(coordinator, store):
    out = asyncio.run(coordinator.submit_config({"port": "80", "bogus": "x"}))
    assert out == {"ok": True, "persisted": True}
    assert store.load_config() == {"port": "80", "bogus": "x"}
    assert not store.filtered_path.exists()


def test_stop_applies_persisted_config(coordinator, store):
    _register(coordinator, "scan1")
    asyncio.run(coordinator.submit_config({"ip": "10.0.0.3"}))

    out = _round(coordinator, store, {"scan1": [PKT_A, PKT_B]})
    assert out["filter_status"] == "ok"
    assert "record" not in out
    assert len(out["filtered_record"]) == 1


def test_filter_failure_keeps_decoded_record(coordinator, store, runner):
    _register(coordinator, "scan1")
    asyncio.run(coordinator.submit_config({"ip": "10.0.0.3"}))
    runner.fail.add("filter")

    out = _round(coordinator, store, {"scan1": [PKT_A, PKT_B]})
    assert out["ok"] is True
    assert out["filter_status"] == "ko"
    assert out["error_kind"] == "ToolInvocationFailed"
    assert len(out["record"]) == 2


def test_decode_failure_is_degraded_success(coordinator, store, runner):
    _register(coordinator, "scan1")
    runner.fail.add("decode")

    out = _round(coordinator, store, {"scan1": [PKT_A]})
    assert out["ok"] is True
    assert out["error_kind"] == "DecodeFailed"
    assert out["results"] == [{"agent": "scan1", "status": "success"}]
    assert "record" not in out
    assert store.merged_path.exists()


def test_reset_keeps_captures(coordinator, store):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A]})
    asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))

    out = asyncio.run(coordinator.reset())
    assert out == {"ok": True, "cleaned": True}
    assert store.load_config() is None
    assert not store.filtered_path.exists()
    assert not store.filtered_decoded_path.exists()
    assert store.merged_path.exists()
    assert store.raw_captures()


def test_concurrent_stops_are_serialized(coordinator, store):
    _register(coordinator, "scan1")
    asyncio.run(coordinator.start())
    write_raw(store.raw_capture_path("scan1"), PKT_A)

    async def both():
        return await asyncio.gather(coordinator.stop(), coordinator.stop())

    a, b = asyncio.run(both())
    assert len(a["record"]) == len(b["record"]) == 1


def test_every_operation_is_audited(coordinator, store, audit):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A]})
    asyncio.run(coordinator.submit_config({}))
    asyncio.run(coordinator.reset())

    names = {e.event for e in audit.read_events()}
    assert {"register", "clear", "start", "stop", "merge", "decode", "filter", "config", "reset"} <= names


def test_failed_merge_leaves_no_merged_capture(coordinator, store, runner):
    _register(coordinator, "scan1")
    runner.fail.add("mergecap")

    with pytest.raises(ToolInvocationFailed):
        _round(coordinator, store, {"scan1": [PKT_A]})

    assert not store.merged_path.exists()
    out = asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))
    assert out == {"ok": True, "persisted": True}


def test_non_ascii_digits_in_config_do_not_break_rounds(coordinator, store):
    _register(coordinator, "scan1")
    _round(coordinator, store, {"scan1": [PKT_A, PKT_B]})

    out = asyncio.run(coordinator.submit_config({"packetSizeMin": "²"}))
    assert out["filter_status"] == "ok"
    assert out["filter_expression"] == ""

    asyncio.run(coordinator.submit_config({"port": "¹"}))
    out = _round(coordinator, store, {"scan1": [PKT_A]})
    assert out["ok"] is True
    assert out["filter_status"] == "ok"


def test_uncompilable_config_is_degraded_stop(coordinator, store, monkeypatch):
    _register(coordinator, "scan1")
    asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))

    def broken(config):
        raise ValueError("bad value")

    monkeypatch.setattr(coordinator_module, "compile_filter", broken)
    out = _round(coordinator, store, {"scan1": [PKT_A]})
    assert out["ok"] is True
    assert out["filter_status"] == "ko"
    assert out["error_kind"] == "InvalidFilterConfig"
    assert len(out["record"]) == 1


def test_unserializable_config_is_reported(coordinator, store):
    asyncio.run(coordinator.submit_config({"ip": "10.0.0.1"}))
    out = asyncio.run(coordinator.submit_config({"ip": object()}))
    assert out["persisted"] is False
    assert out["error_kind"] == "StorageIOFailed"
    assert store.load_config() == {"ip": "10.0.0.1"}


def test_status_includes_current_config(coordinator):
    asyncio.run(coordinator.submit_config({"port": "443"}))
    st = coordinator.status()
    assert st["config_present"] is True
    assert st["config"] == {"port": "443"}
