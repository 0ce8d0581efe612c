"""
System configuration table: default accessory bill of materials per system type.

Static and read-only; the pricing engine looks codes up here and resolves
them against the product catalog.
"""
from types import MappingProxyType
from typing import Mapping, Tuple

_ZIP_ACCESSORIES = ("BYD10-114DK", "BYD10-113SK", "ZG0256", "ZIP-REG-101", "WB5-5")

SYSTEM_CONFIGS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "BYD100": _ZIP_ACCESSORIES,
    "BYD125": _ZIP_ACCESSORIES,
    "SKY1500": ("SKY-YAY-001", "SKY-MNT-001", "ZG0256", "WB5-5"),
    "SKY1600": ("SKY-AMR-001", "SKY-MNT-002", "ZG0256", "WB5-5"),
})


def get_accessory_codes(system_type: str) -> Tuple[str, ...]:
    """Ordered accessory codes for ``system_type``; empty for an unknown type."""
    return SYSTEM_CONFIGS.get(system_type, ())


def is_known_system(system_type: str) -> bool:
    return system_type in SYSTEM_CONFIGS
