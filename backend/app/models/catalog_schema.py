"""
Catalog domain types for Bayedi Estimator.

These are the in-memory shapes the pricing engine works on. ORM rows
(app.models.orm_models.CatalogProduct) are converted into ``Product`` before
pricing so the engine never touches a session.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProductCategory(str, Enum):
    PROFILE = "PROFILE"
    ACCESSORY = "ACCESSORY"
    MOTOR = "MOTOR"
    REMOTE = "REMOTE"
    FABRIC = "FABRIC"


class SystemType(str, Enum):
    BYD100 = "BYD100"
    BYD125 = "BYD125"
    SKY1500 = "SKY1500"
    SKY1600 = "SKY1600"
    ALL = "ALL"          # catalog entry applies to every system family


class ProductUnit(str, Enum):
    METER = "mt"
    PIECE = "ad"
    SET = "tk"

    @property
    def is_length_based(self) -> bool:
        return self is ProductUnit.METER


class AccessoryRole(str, Enum):
    GENERIC = "GENERIC"
    ZIP_FABRIC = "ZIP_FABRIC"    # zip runs up both sides of the panel
    ZIP_GUIDE = "ZIP_GUIDE"      # four guides per panel


# Legacy catalog code for the zip guide part
ZIP_GUIDE_CODE = "ZG0256"


def classify_accessory(code: str) -> AccessoryRole:
    """
    Decide the accessory role for a catalog code at authoring time.

    Only used when a product is created or seeded; the role is then stored
    on the product and the pricing engine reads the role, not the code.
    """
    normalized = (code or "").strip().upper()
    if normalized == ZIP_GUIDE_CODE:
        return AccessoryRole.ZIP_GUIDE
    if "ZIP" in normalized:
        return AccessoryRole.ZIP_FABRIC
    return AccessoryRole.GENERIC


@dataclass(frozen=True)
class LengthMultipliers:
    """Profile length per panel = width * width_m + height * height_m."""
    width: float
    height: float

    def length_for(self, width_m: float, height_m: float) -> float:
        return self.width * width_m + self.height * height_m


@dataclass(frozen=True)
class Product:
    code: str
    name: str
    category: ProductCategory
    base_price: float
    unit: ProductUnit = ProductUnit.PIECE
    system_type: SystemType = SystemType.ALL
    weight_per_meter: Optional[float] = None     # kg/m, profiles only
    multipliers: Optional[LengthMultipliers] = None
    accessory_role: AccessoryRole = AccessoryRole.GENERIC
    is_active: bool = True

    def __post_init__(self):
        if self.base_price < 0:
            raise ValueError(f"Product {self.code}: base_price must be >= 0 (got {self.base_price})")
        if self.category is ProductCategory.PROFILE:
            if self.weight_per_meter is None or self.multipliers is None:
                raise ValueError(
                    f"Profile {self.code} requires weight_per_meter and length multipliers"
                )

    def applies_to(self, system_type: str) -> bool:
        return self.system_type is SystemType.ALL or self.system_type.value == system_type
