from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional

# Compiles a FilterConfig mapping into a Wireshark display filter.
# Every present field becomes one parenthesised clause, clauses are ANDed
# in the canonical order below, values inside a field are ORed.

TCP_FLAGS = {
    "fin": "fin",
    "syn": "syn",
    "rst": "reset",
    "reset": "reset",
    "psh": "push",
    "push": "push",
    "ack": "ack",
    "urg": "urg",
    "ece": "ece",
    "cwr": "cwr",
}

_UINT_RE = re.compile(r"^[0-9]+$")
_PROTOCOL_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
# IPv4, IPv6, CIDR, MAC and host names, nothing that can close a clause
_ADDRESS_RE = re.compile(r"^[0-9A-Za-z:._/-]+$")


def _split(raw: Any) -> List[str]:
    """
    Comma separated raw value into trimmed, non blank entries.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        raw = ",".join(str(v) for v in raw)
    return [v.strip() for v in str(raw).split(",") if v.strip()]


def _uint(v: str) -> Optional[int]:
    # ASCII only, str.isdigit also accepts superscripts that int() rejects
    return int(v) if _UINT_RE.match(v) else None


def _quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _any_of(preds: List[str]) -> str:
    return "(" + " || ".join(preds) + ")" if preds else ""


def _addr(field: str) -> Callable[[Any], str]:
    def build(raw: Any) -> str:
        return _any_of([f"{field} == {v}" for v in _split(raw) if _ADDRESS_RE.match(v)])
    return build


def _ports(*fields: str) -> Callable[[Any], str]:
    def build(raw: Any) -> str:
        preds: List[str] = []
        for v in _split(raw):
            port = _uint(v)
            if port is None:
                continue
            preds.extend(f"{f} == {port}" for f in fields)
        return _any_of(preds)
    return build


def _protocol(raw: Any) -> str:
    return _any_of([v.lower() for v in _split(raw) if _PROTOCOL_RE.match(v)])


def _frame_len(op: str) -> Callable[[Any], str]:
    def build(raw: Any) -> str:
        vals = _split(raw)
        n = _uint(vals[0]) if vals else None
        return f"(frame.len {op} {n})" if n is not None else ""
    return build


def _time_range(raw: Any) -> str:
    """
    "<start>/<end>", either side may be empty.
    """
    if raw is None:
        return ""
    text = str(raw).strip()
    if not text:
        return ""
    start, _, end = text.partition("/")
    preds = []
    if start.strip():
        preds.append(f"frame.time >= {_quote(start.strip())}")
    if end.strip():
        preds.append(f"frame.time <= {_quote(end.strip())}")
    return "(" + " && ".join(preds) + ")" if preds else ""


def _tcp_flags(raw: Any) -> str:
    preds: List[str] = []
    for v in _split(raw):
        flag = TCP_FLAGS.get(v.lower())
        if flag and f"tcp.flags.{flag} == 1" not in preds:
            preds.append(f"tcp.flags.{flag} == 1")
    return _any_of(preds)


def _payload(raw: Any) -> str:
    return _any_of([f"frame contains {_quote(v)}" for v in _split(raw)])


FIELD_ORDER: Dict[str, Callable[[Any], str]] = {
    "ip": _addr("ip.addr"),
    "port": _ports("tcp.port", "udp.port"),
    "protocol": _protocol,
    "sourceIp": _addr("ip.src"),
    "destinationIp": _addr("ip.dst"),
    "sourcePort": _ports("tcp.srcport", "udp.srcport"),
    "destinationPort": _ports("tcp.dstport", "udp.dstport"),
    "packetSizeMin": _frame_len(">="),
    "packetSizeMax": _frame_len("<="),
    "timeRange": _time_range,
    "tcpFlags": _tcp_flags,
    "payloadContent": _payload,
    "macAddress": _addr("eth.addr"),
}


def compile_filter(config: Optional[Mapping[str, Any]]) -> str:
    """
    Compile a FilterConfig into a display filter expression.

    Total and deterministic. Unknown fields, blank values and values that
    cannot be expressed (non numeric ports, unknown TCP flags) are ignored.
    The empty string means "match everything".

    Example:
      {"ip": "1.2.3.4, 5.6.7.8", "packetSizeMax": "1500"}
      -> (ip.addr == 1.2.3.4 || ip.addr == 5.6.7.8) && (frame.len <= 1500)
    """
    if not config:
        return ""

    clauses = []
    for field, build in FIELD_ORDER.items():
        if field not in config:
            continue
        clause = build(config[field])
        if clause:
            clauses.append(clause)
    return " && ".join(clauses)
