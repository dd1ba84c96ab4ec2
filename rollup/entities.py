from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterator, Literal, Optional

Role = Literal["SM", "M", "AM", "FLAP", "EM"]
Period = Literal["y", "w", "m"]
Stream = Literal["service", "commerce"]

ROLES = ("SM", "M", "AM", "FLAP", "EM")
LEAF_ROLES = ("AM", "FLAP")
PERIODS = ("y", "w", "m")
STREAMS = ("service", "commerce")

_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


def entity_id(name: str, role: str) -> str:
    """Stable id for a (name, role) pair, e.g. ('Ananya Singh', 'M') -> 'm-ananya-singh'."""
    return f"{role.lower()}-{slugify(name)}"


@dataclass
class PeriodValues:
    y: float = 0.0
    w: float = 0.0
    m: float = 0.0

    def get(self, period: str) -> float:
        return float(getattr(self, period))

    def __add__(self, other: "PeriodValues") -> "PeriodValues":
        return PeriodValues(self.y + other.y, self.w + other.w, self.m + other.m)


@dataclass
class StreamValues:
    service: PeriodValues = field(default_factory=PeriodValues)
    commerce: PeriodValues = field(default_factory=PeriodValues)

    def get(self, stream: str) -> PeriodValues:
        return getattr(self, stream)

    def __add__(self, other: "StreamValues") -> "StreamValues":
        return StreamValues(self.service + other.service, self.commerce + other.commerce)


@dataclass
class Entity:
    id: str
    name: str
    role: str
    manager_id: Optional[str] = None
    sm_id: Optional[str] = None
    targets: Dict[str, float] = field(default_factory=lambda: {"service": 0.0, "commerce": 0.0})
    scaled_targets: StreamValues = field(default_factory=StreamValues)
    achieved: StreamValues = field(default_factory=StreamValues)
    active_client_count: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        out = asdict(self)
        if self.role != "EM":
            out.pop("active_client_count")
        return out


class EntityRegistry:
    """Per-request store of entities keyed by id.

    ``resolve`` returns the registered entity for a (name, role) pair, creating
    it on first sight. Later calls never touch targets or parents; only
    ``active_client_count`` is overwritten, and only by a non-None value, so
    the last row carrying a value wins.
    """

    def __init__(self) -> None:
        self._entities: Dict[str, Entity] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)

    def get(self, key: str) -> Optional[Entity]:
        return self._entities.get(key)

    def resolve(
        self,
        name: str,
        role: str,
        *,
        service_target: float = 0.0,
        commerce_target: float = 0.0,
        manager_id: Optional[str] = None,
        sm_id: Optional[str] = None,
        active_client_count: Optional[float] = None,
    ) -> Entity:
        key = entity_id(name, role)
        existing = self._entities.get(key)
        if existing is not None:
            if active_client_count is not None:
                existing.active_client_count = active_client_count
            return existing

        entity = Entity(
            id=key,
            name=name.strip(),
            role=role,
            manager_id=manager_id,
            sm_id=sm_id,
            targets={"service": float(service_target), "commerce": float(commerce_target)},
            active_client_count=active_client_count,
        )
        self._entities[key] = entity
        return entity


def resolve_entity(name: str, role: str, registry: EntityRegistry, **attrs) -> Entity:
    return registry.resolve(name, role, **attrs)
