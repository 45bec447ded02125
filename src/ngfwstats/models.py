"""Record data models: firewall rules, connections, traffic, threat events, snapshots."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Family(enum.Enum):
    """The three record categories the engine aggregates."""

    FIREWALL = "firewall"
    NETWORK = "network"
    THREAT = "threat"


class RuleAction(enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    DROP = "drop"


class AddressType(enum.Enum):
    ANY = "any"
    IP = "ip"
    SUBNET = "subnet"
    GROUP = "group"


class Protocol(enum.Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"


class ConnectionStatus(enum.Enum):
    """Connection lifecycle. Only ``active`` may move to another state."""

    ACTIVE = "active"
    CLOSED = "closed"
    TIMEOUT = "timeout"
    BLOCKED = "blocked"


class ThreatType(enum.Enum):
    MALWARE = "malware"
    INTRUSION = "intrusion"
    BOTNET = "botnet"
    PHISHING = "phishing"
    VULNERABILITY = "vulnerability"
    SPAM = "spam"


class Severity(enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ThreatAction(enum.Enum):
    BLOCKED = "blocked"
    QUARANTINED = "quarantined"
    LOGGED = "logged"
    ALERTED = "alerted"


@dataclass(frozen=True)
class AddressSpec:
    """Source or destination of a firewall rule. ``any`` matches everything."""

    type: AddressType = AddressType.ANY
    value: str = "any"


@dataclass(frozen=True)
class ServiceSpec:
    """Protocol plus a port spec such as ``"443"`` or ``"8000-8080"``."""

    protocol: str = "any"
    ports: str = "any"


@dataclass
class FirewallRule:
    """A single firewall rule. Higher priority is evaluated first."""

    name: str
    action: RuleAction
    priority: int = 0
    enabled: bool = True
    description: str = ""
    source: AddressSpec = field(default_factory=AddressSpec)
    destination: AddressSpec = field(default_factory=AddressSpec)
    service: ServiceSpec = field(default_factory=ServiceSpec)
    logging: bool = False
    hit_count: int = 0
    last_hit: float | None = None
    created_by: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "priority": self.priority,
            "source": {"type": self.source.type.value, "value": self.source.value},
            "destination": {
                "type": self.destination.type.value,
                "value": self.destination.value,
            },
            "service": {"protocol": self.service.protocol, "ports": self.service.ports},
            "action": self.action.value,
            "logging": self.logging,
            "hit_count": self.hit_count,
            "last_hit": self.last_hit,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> FirewallRule:
        source = doc.get("source") or {}
        destination = doc.get("destination") or {}
        service = doc.get("service") or {}
        return cls(
            id=doc["id"],
            name=doc["name"],
            description=doc.get("description", ""),
            enabled=bool(doc.get("enabled", True)),
            priority=int(doc.get("priority", 0)),
            source=AddressSpec(
                AddressType(source.get("type", "any")), source.get("value", "any")
            ),
            destination=AddressSpec(
                AddressType(destination.get("type", "any")),
                destination.get("value", "any"),
            ),
            service=ServiceSpec(service.get("protocol", "any"), service.get("ports", "any")),
            action=RuleAction(doc["action"]),
            logging=bool(doc.get("logging", False)),
            hit_count=int(doc.get("hit_count", 0)),
            last_hit=doc.get("last_hit"),
            created_by=doc.get("created_by", ""),
            created_at=doc.get("created_at", 0.0),
            updated_at=doc.get("updated_at", 0.0),
        )


@dataclass
class NetworkConnection:
    """One logical flow, identified by ``session_id``."""

    source_ip: str
    destination_ip: str
    source_port: int = 0
    destination_port: int = 0
    protocol: Protocol = Protocol.TCP
    application: str | None = None
    user: str | None = None
    bytes_in: int = 0
    bytes_out: int = 0
    duration: float = 0.0
    status: ConnectionStatus = ConnectionStatus.ACTIVE
    country: str | None = None
    session_id: str = field(default_factory=_new_id)
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "source_ip": self.source_ip,
            "source_port": self.source_port,
            "destination_ip": self.destination_ip,
            "destination_port": self.destination_port,
            "protocol": self.protocol.value,
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
            "duration": self.duration,
            "status": self.status.value,
            "session_id": self.session_id,
        }
        # Optional labels are omitted rather than stored as null
        for key in ("application", "user", "country"):
            value = getattr(self, key)
            if value is not None:
                doc[key] = value
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> NetworkConnection:
        return cls(
            id=doc["id"],
            timestamp=doc["timestamp"],
            source_ip=doc["source_ip"],
            source_port=int(doc.get("source_port", 0)),
            destination_ip=doc["destination_ip"],
            destination_port=int(doc.get("destination_port", 0)),
            protocol=Protocol(doc.get("protocol", "TCP")),
            application=doc.get("application"),
            user=doc.get("user"),
            bytes_in=int(doc.get("bytes_in", 0)),
            bytes_out=int(doc.get("bytes_out", 0)),
            duration=doc.get("duration", 0.0),
            status=ConnectionStatus(doc.get("status", "active")),
            country=doc.get("country"),
            session_id=doc["session_id"],
        )


@dataclass
class TrafficSample:
    """Interface counters sampled at one moment."""

    interface: str
    bytes_in: int = 0
    bytes_out: int = 0
    packets_in: int = 0
    packets_out: int = 0
    bandwidth: float = 0.0
    utilization: float = 0.0
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "interface": self.interface,
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
            "packets_in": self.packets_in,
            "packets_out": self.packets_out,
            "bandwidth": self.bandwidth,
            "utilization": self.utilization,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TrafficSample:
        return cls(
            id=doc["id"],
            timestamp=doc["timestamp"],
            interface=doc["interface"],
            bytes_in=int(doc.get("bytes_in", 0)),
            bytes_out=int(doc.get("bytes_out", 0)),
            packets_in=int(doc.get("packets_in", 0)),
            packets_out=int(doc.get("packets_out", 0)),
            bandwidth=doc.get("bandwidth", 0.0),
            utilization=doc.get("utilization", 0.0),
        )


@dataclass(frozen=True)
class ThreatDetails:
    protocol: str | None = None
    port: int | None = None
    size: int | None = None
    country: str | None = None
    malware_family: str | None = None
    cve_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("protocol", self.protocol),
                ("port", self.port),
                ("size", self.size),
                ("country", self.country),
                ("malware_family", self.malware_family),
                ("cve_id", self.cve_id),
            )
            if value is not None
        }


@dataclass
class ThreatEvent:
    """A detected threat.

    ``resolved_at``/``resolved_by`` are set if and only if ``resolved`` is
    true, and resolution is terminal.
    """

    type: ThreatType
    severity: Severity
    source: str
    destination: str = ""
    description: str = ""
    signature: str = ""
    action: ThreatAction = ThreatAction.LOGGED
    blocked: bool = False
    details: ThreatDetails = field(default_factory=ThreatDetails)
    rule_id: str | None = None
    user_id: str | None = None
    resolved: bool = False
    resolved_by: str | None = None
    resolved_at: float | None = None
    notes: str | None = None
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if self.resolved != (self.resolved_at is not None and self.resolved_by is not None):
            raise ValueError(
                "resolved_at and resolved_by must be set exactly when resolved is true"
            )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "severity": self.severity.value,
            "source": self.source,
            "destination": self.destination,
            "description": self.description,
            "signature": self.signature,
            "action": self.action.value,
            "blocked": self.blocked,
            "details": self.details.to_document(),
            "resolved": self.resolved,
        }
        for key in ("rule_id", "user_id", "resolved_by", "resolved_at", "notes"):
            value = getattr(self, key)
            if value is not None:
                doc[key] = value
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ThreatEvent:
        return cls(
            id=doc["id"],
            timestamp=doc["timestamp"],
            type=ThreatType(doc["type"]),
            severity=Severity(doc["severity"]),
            source=doc["source"],
            destination=doc.get("destination", ""),
            description=doc.get("description", ""),
            signature=doc.get("signature", ""),
            action=ThreatAction(doc.get("action", "logged")),
            blocked=bool(doc.get("blocked", False)),
            details=ThreatDetails(**(doc.get("details") or {})),
            rule_id=doc.get("rule_id"),
            user_id=doc.get("user_id"),
            resolved=bool(doc.get("resolved", False)),
            resolved_by=doc.get("resolved_by"),
            resolved_at=doc.get("resolved_at"),
            notes=doc.get("notes"),
        )


@dataclass(frozen=True)
class StatsSnapshot:
    """Immutable, timestamped set of precomputed counters for one family."""

    family: Family
    counters: dict[str, int | float]
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "family": self.family.value,
            "timestamp": self.timestamp,
            "counters": dict(self.counters),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> StatsSnapshot:
        return cls(
            id=doc["id"],
            family=Family(doc["family"]),
            timestamp=doc["timestamp"],
            counters=dict(doc.get("counters") or {}),
        )
