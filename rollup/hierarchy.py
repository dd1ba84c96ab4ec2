from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

import pandas as pd

from rollup.entities import (
    LEAF_ROLES,
    Entity,
    EntityRegistry,
    PeriodValues,
    StreamValues,
    entity_id,
)
from rollup.layout import ROLE_NAME_COLUMNS
from rollup.parsing import names, numericize, parse_optional_number
from rollup.targets import scale_targets

logger = logging.getLogger(__name__)

VIRTUAL_MANAGER_NAME = "Direct Reports"
VIRTUAL_MANAGER_PREFIX = "virtual-m-"

REVENUE_FIGURES = ["service_y", "service_w", "service_m", "commerce_y", "commerce_w", "commerce_m"]
TARGET_NAME_COLUMNS = ["sm_name", "m_name", "m_sm_name", "am_name", "am_manager_name", "am_sm_name", "em_name", "em_sm_name"]
TARGET_FIGURES = [
    "sm_service_target",
    "sm_commerce_target",
    "m_service_target",
    "m_commerce_target",
    "am_service_target",
    "am_commerce_target",
    "em_service_target",
]


@dataclass
class Hierarchy:
    sms: List[Entity] = field(default_factory=list)
    managers: List[Entity] = field(default_factory=list)
    ems: List[Entity] = field(default_factory=list)
    ams: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, object]]]:
        return {
            "senior_managers": [e.to_dict() for e in self.sms],
            "managers": [e.to_dict() for e in self.managers],
            "executive_managers": [e.to_dict() for e in self.ems],
            "account_managers": [e.to_dict() for e in self.ams],
        }


@dataclass
class HierarchyNode:
    entity: Entity
    children: List["HierarchyNode"] = field(default_factory=list)
    ems: List["HierarchyNode"] = field(default_factory=list)
    is_virtual: bool = False

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def role(self) -> str:
        return self.entity.role

    @property
    def is_leaf(self) -> bool:
        return self.entity.role in LEAF_ROLES


def _append_unique(bucket: List[Entity], seen: set, entity: Entity) -> None:
    if entity.id not in seen:
        seen.add(entity.id)
        bucket.append(entity)


def _by_name(entities: Iterable[Entity]) -> Dict[str, Entity]:
    lookup: Dict[str, Entity] = {}
    for e in entities:
        lookup.setdefault(e.name.lower(), e)
    return lookup


def _lookup(lookup: Dict[str, Entity], name: Optional[str]) -> Optional[Entity]:
    if not name:
        return None
    return lookup.get(name.lower())


def achieved_by_entity(revenue_df: pd.DataFrame) -> Dict[str, StreamValues]:
    """Sum the six revenue figures of every row into each entity named on it."""
    if revenue_df.empty:
        return {}
    df = names(revenue_df.copy(), [col for _, col in ROLE_NAME_COLUMNS])
    df = numericize(df, REVENUE_FIGURES)

    frames = []
    for role, col in ROLE_NAME_COLUMNS:
        part = df[df[col].notna()]
        if part.empty:
            continue
        part = part.assign(entity_id=part[col].map(lambda n, r=role: entity_id(n, r)))
        frames.append(part[["entity_id"] + REVENUE_FIGURES])
    if not frames:
        return {}

    totals = pd.concat(frames, ignore_index=True).groupby("entity_id")[REVENUE_FIGURES].sum()
    out: Dict[str, StreamValues] = {}
    for key, r in totals.iterrows():
        out[str(key)] = StreamValues(
            service=PeriodValues(float(r["service_y"]), float(r["service_w"]), float(r["service_m"])),
            commerce=PeriodValues(float(r["commerce_y"]), float(r["commerce_w"]), float(r["commerce_m"])),
        )
    return out


def load_entities(targets_df: pd.DataFrame, revenue_df: pd.DataFrame, today: date) -> Hierarchy:
    """Resolve SM, Manager, AM/FLAP and EM entities from the Targets sheet.

    The sheet holds four independent blocks side by side; each block is read
    in its own pass so parents are known before children look them up.
    Parent references that do not match a loaded entity are left unset.
    """
    registry = EntityRegistry()
    out = Hierarchy()
    seen: set = set()

    targets = names(targets_df.copy(), TARGET_NAME_COLUMNS)
    targets = numericize(targets, TARGET_FIGURES)
    rows = targets.to_dict(orient="records")

    for row in rows:
        if row["sm_name"]:
            sm = registry.resolve(
                row["sm_name"],
                "SM",
                service_target=row["sm_service_target"],
                commerce_target=row["sm_commerce_target"],
            )
            _append_unique(out.sms, seen, sm)
    sm_by_name = _by_name(out.sms)

    for row in rows:
        if row["m_name"]:
            sm = _lookup(sm_by_name, row["m_sm_name"])
            manager = registry.resolve(
                row["m_name"],
                "M",
                service_target=row["m_service_target"],
                commerce_target=row["m_commerce_target"],
                sm_id=sm.id if sm else None,
            )
            _append_unique(out.managers, seen, manager)
    manager_by_name = _by_name(out.managers)

    for row in rows:
        if row["am_name"]:
            role = "FLAP" if str(row["am_role"] or "").strip().upper() == "FLAP" else "AM"
            sm = _lookup(sm_by_name, row["am_sm_name"])
            manager = _lookup(manager_by_name, row["am_manager_name"])
            am = registry.resolve(
                row["am_name"],
                role,
                service_target=row["am_service_target"],
                commerce_target=row["am_commerce_target"],
                manager_id=manager.id if manager else None,
                sm_id=sm.id if sm else None,
            )
            _append_unique(out.ams, seen, am)

    for row in rows:
        if not row["em_name"] or not row["em_sm_name"]:
            continue
        sm = _lookup(sm_by_name, row["em_sm_name"])
        if sm is None:
            logger.debug("Skipping EM %r: SM %r not found", row["em_name"], row["em_sm_name"])
            continue
        em = registry.resolve(
            row["em_name"],
            "EM",
            service_target=row["em_service_target"],
            commerce_target=0.0,
            sm_id=sm.id,
            active_client_count=parse_optional_number(row["em_active_clients"]),
        )
        _append_unique(out.ems, seen, em)

    achieved = achieved_by_entity(revenue_df)
    for entity in registry:
        entity.scaled_targets = scale_targets(entity.targets, today)
        entity.achieved = achieved.get(entity.id, StreamValues()) + StreamValues()

    logger.info(
        "Loaded hierarchy: %d SMs, %d managers, %d AM/FLAP, %d EMs",
        len(out.sms),
        len(out.managers),
        len(out.ams),
        len(out.ems),
    )
    return out


def _virtual_manager(sm: HierarchyNode) -> HierarchyNode:
    entity = Entity(id=f"{VIRTUAL_MANAGER_PREFIX}{sm.id}", name=VIRTUAL_MANAGER_NAME, role="M", sm_id=sm.id)
    return HierarchyNode(entity=entity, is_virtual=True)


def _sort_tree(nodes: List[HierarchyNode]) -> List[HierarchyNode]:
    for node in nodes:
        node.children = _sort_tree(node.children)
        node.ems = _sort_tree(node.ems)
    return sorted(nodes, key=lambda n: n.name.casefold())


def build_hierarchy(
    sms: Iterable[Entity],
    managers: Iterable[Entity],
    leaves: Iterable[Entity],
    ems: Iterable[Entity] = (),
) -> List[HierarchyNode]:
    """Attach managers, AM/FLAP leaves and EMs under their SM roots.

    Anything whose parent cannot be resolved is left out of the tree. A leaf
    with an SM but no manager goes under that SM's virtual manager.
    """
    sm_nodes: Dict[str, HierarchyNode] = {}
    for sm in sms:
        sm_nodes.setdefault(sm.id, HierarchyNode(entity=sm))

    manager_nodes: Dict[str, HierarchyNode] = {}
    for manager in managers:
        if manager.id in manager_nodes:
            continue
        parent = sm_nodes.get(manager.sm_id) if manager.sm_id else None
        if parent is None:
            logger.debug("Dropping manager %s: no SM %r", manager.id, manager.sm_id)
            continue
        # Only managers under an SM can take leaves.
        node = HierarchyNode(entity=manager)
        manager_nodes[manager.id] = node
        parent.children.append(node)

    virtual_nodes: Dict[str, HierarchyNode] = {}
    for leaf in leaves:
        if leaf.manager_id and leaf.manager_id in manager_nodes:
            manager_nodes[leaf.manager_id].children.append(HierarchyNode(entity=leaf))
        elif leaf.sm_id and leaf.sm_id in sm_nodes:
            sm_node = sm_nodes[leaf.sm_id]
            virtual = virtual_nodes.get(sm_node.id)
            if virtual is None:
                virtual = _virtual_manager(sm_node)
                virtual_nodes[sm_node.id] = virtual
                sm_node.children.append(virtual)
            virtual.children.append(HierarchyNode(entity=leaf))
        else:
            logger.debug("Dropping %s %s: no manager or SM", leaf.role, leaf.id)

    for em in ems:
        parent = sm_nodes.get(em.sm_id) if em.sm_id else None
        if parent is None:
            logger.debug("Dropping EM %s: no SM %r", em.id, em.sm_id)
            continue
        parent.ems.append(HierarchyNode(entity=em))

    return _sort_tree(list(sm_nodes.values()))


def iter_leaves(nodes: Iterable[HierarchyNode]) -> Iterable[HierarchyNode]:
    for node in nodes:
        if node.is_leaf:
            yield node
        else:
            yield from iter_leaves(node.children)


def manager_options(tree: Iterable[HierarchyNode]) -> List[Dict[str, str]]:
    """Managers a user can pick from; virtual groupings are not offered."""
    return [
        {"id": m.id, "name": m.name, "sm_id": sm.id}
        for sm in tree
        for m in sm.children
        if not m.is_virtual
    ]


def scope_hierarchy(hierarchy: Hierarchy, sm: str) -> Hierarchy:
    """Restrict a hierarchy to one SM (matched by name, case-insensitive, or id)."""
    wanted = sm.strip().lower()
    sms = [e for e in hierarchy.sms if wanted and (e.name.lower() == wanted or e.id == wanted)]
    sm_ids = {e.id for e in sms}
    managers = [e for e in hierarchy.managers if e.sm_id in sm_ids]
    manager_ids = {e.id for e in managers}
    return Hierarchy(
        sms=sms,
        managers=managers,
        ems=[e for e in hierarchy.ems if e.sm_id in sm_ids],
        ams=[e for e in hierarchy.ams if e.sm_id in sm_ids or e.manager_id in manager_ids],
    )
