"""
Layer map — the fixed module universe and its dependency tiers.

The workspace holds eleven modules arranged in four dependency layers.
Recovery work is scheduled over five execution tiers: layer 1 is split so
that ``i18n`` (which depends on ``auth``) always runs after ``auth``.

    tier 1  auth                                    layer 1
    tier 2  i18n                                    layer 1
    tier 3  processing, multimedia, analytics       layer 2
    tier 4  premium, public-profiles, recommendations   layer 3
    tier 5  admin, workflow, payments               layer 4

A module may only depend on shared packages and on modules scheduled in an
earlier tier.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final

from modrecovery.core.errors import InvalidArgumentError

# Shared packages every module may depend on (not part of the universe).
SHARED_PACKAGES: Final[tuple[str, ...]] = ("core",)

EXECUTION_TIERS: Final[tuple[tuple[str, ...], ...]] = (
    ("auth",),
    ("i18n",),
    ("processing", "multimedia", "analytics"),
    ("premium", "public-profiles", "recommendations"),
    ("admin", "workflow", "payments"),
)

MODULE_IDS: Final[tuple[str, ...]] = tuple(m for tier in EXECUTION_TIERS for m in tier)

_LAYERS: Final = MappingProxyType({
    "auth": 1,
    "i18n": 1,
    "processing": 2,
    "multimedia": 2,
    "analytics": 2,
    "premium": 3,
    "public-profiles": 3,
    "recommendations": 3,
    "admin": 4,
    "workflow": 4,
    "payments": 4,
})

_TIERS: Final = MappingProxyType({
    module_id: index
    for index, tier in enumerate(EXECUTION_TIERS, start=1)
    for module_id in tier
})


@dataclass(frozen=True)
class LayerInfo:
    """Static placement of one module."""

    module_id: str
    layer: int
    tier: int
    allowed_dependencies: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "module_id": self.module_id,
            "layer": self.layer,
            "tier": self.tier,
            "allowed_dependencies": list(self.allowed_dependencies),
        }


def is_known_module(module_id: str) -> bool:
    return module_id in _LAYERS


def unknown_modules(module_ids: Iterable[str]) -> list[str]:
    """Return the ids that are not part of the module universe."""
    return [m for m in module_ids if not is_known_module(m)]


def require_module(module_id: str | None) -> str:
    """Validate a single module id.

    Raises:
        InvalidArgumentError: If the id is missing or unknown.
    """
    if not module_id:
        raise InvalidArgumentError("moduleId is required")
    if not is_known_module(module_id):
        raise InvalidArgumentError(
            f"Invalid module ID: {module_id}. Valid IDs: {', '.join(MODULE_IDS)}",
            details={"module_id": module_id, "valid_ids": list(MODULE_IDS)},
        )
    return module_id


def require_modules(module_ids: Iterable[str] | None) -> list[str]:
    """Validate a module selection; ``None`` selects the whole universe."""
    if module_ids is None:
        return list(MODULE_IDS)
    selected = list(module_ids)
    invalid = unknown_modules(selected)
    if invalid:
        raise InvalidArgumentError(
            f"Invalid module IDs: {', '.join(invalid)}",
            details={"invalid": invalid, "valid_ids": list(MODULE_IDS)},
        )
    # Preserve caller order, drop duplicates
    return list(dict.fromkeys(selected))


def module_layer(module_id: str) -> int:
    return _LAYERS[require_module(module_id)]


def execution_tier(module_id: str) -> int:
    return _TIERS[require_module(module_id)]


def get_module_layer_info(module_id: str) -> LayerInfo:
    """Look up the layer, tier, and allowed dependencies of a module."""
    tier = execution_tier(module_id)
    earlier = tuple(m for t in EXECUTION_TIERS[: tier - 1] for m in t)
    return LayerInfo(
        module_id=module_id,
        layer=_LAYERS[module_id],
        tier=tier,
        allowed_dependencies=SHARED_PACKAGES + earlier,
    )


def modules_in_layer(layer: int) -> tuple[str, ...]:
    return tuple(m for m in MODULE_IDS if _LAYERS[m] == layer)


def group_by_tier(
    module_ids: Iterable[str],
    tiers: tuple[tuple[str, ...], ...] = EXECUTION_TIERS,
) -> list[list[str]]:
    """Split a selection into execution tiers, dropping empty tiers.

    Tier order follows ``tiers``; order within a tier follows the tier
    definition, not the caller's order.
    """
    wanted = set(module_ids)
    groups = [[m for m in tier if m in wanted] for tier in tiers]
    return [g for g in groups if g]
