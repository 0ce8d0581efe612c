"""
Pricing Engine — itemized cost breakdown for one quote item.

For a panel of a given system type (width × height × quantity) the engine:
  - prices every active profile of the system by mass
    (weight/m × formula length × quantity × price/kg)
  - prices the system's default accessories by unit-type rules
  - adds optional fabric (area based) and motor/remote costs
  - applies the dealer's profit margin, then the dealer's discount

The engine is a pure computation over its inputs and a catalog read. Unknown
system types and missing catalog rows never raise: they produce empty lines
and are listed in ``PriceBreakdown.missing_codes``. No rounding is applied;
callers round for presentation.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from app.models.catalog_schema import AccessoryRole, Product, ProductCategory
from app.services.catalog_engine import ProductCatalog
from app.services.perf_monitor import timed
from app.services.system_config import get_accessory_codes, is_known_system

logger = logging.getLogger("bayedi-pricing")

ZIP_SIDES = 2              # zip runs up both sides of the panel
ZIP_GUIDES_PER_PANEL = 4


class QuoteValidationError(ValueError):
    """A quote item spec is missing a required field or has an out-of-range value."""


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class FabricSpec:
    included: bool = False
    price: Optional[float] = None          # per m²
    multiplier: Optional[float] = None     # area multiplier, 1 when unset


@dataclass
class MotorSpec:
    included: bool = False
    motor_type: Optional[str] = None
    price: Optional[float] = None
    count: Optional[int] = None


@dataclass
class RemoteSpec:
    remote_type: Optional[str] = None
    price: Optional[float] = None
    count: Optional[int] = None


@dataclass
class QuoteItemSpec:
    system_type: str
    width_mm: float
    height_mm: float
    quantity: int
    paint_code: Optional[str] = None
    fabric: FabricSpec = field(default_factory=FabricSpec)
    motor: MotorSpec = field(default_factory=MotorSpec)
    remote: RemoteSpec = field(default_factory=RemoteSpec)

    def __post_init__(self):
        if not self.system_type:
            raise QuoteValidationError("system_type is required")
        if self.width_mm is None or self.width_mm <= 0:
            raise QuoteValidationError(f"width must be > 0 mm (got {self.width_mm})")
        if self.height_mm is None or self.height_mm <= 0:
            raise QuoteValidationError(f"height must be > 0 mm (got {self.height_mm})")
        if self.quantity is None or int(self.quantity) != self.quantity or self.quantity < 1:
            raise QuoteValidationError(f"quantity must be a positive integer (got {self.quantity})")


@dataclass(frozen=True)
class DealerContext:
    """
    Dealer pricing percentages. Both default to 0, which leaves the
    subtotal untouched; callers with no dealer pass nothing.
    """
    profit_margin: float = 0.0
    discount_rate: float = 0.0

    def __post_init__(self):
        if self.profit_margin < 0 or self.discount_rate < 0:
            raise ValueError(
                f"Dealer percentages must be non-negative "
                f"(margin={self.profit_margin}, discount={self.discount_rate})"
            )


NO_DEALER = DealerContext()


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class ProfileLine:
    code: str
    name: str
    weight_per_meter: float
    length_m: float             # per panel
    total_length_m: float       # length_m × quantity
    total_kg: float
    unit_price: float           # per kg
    total_price: float


@dataclass
class AccessoryLine:
    code: str
    name: str
    unit: str
    quantity: float
    unit_price: float
    total_price: float


@dataclass
class PriceBreakdown:
    system_type: str
    quantity: int
    profiles: List[ProfileLine] = field(default_factory=list)
    accessories: List[AccessoryLine] = field(default_factory=list)
    total_profile_kg: float = 0.0
    total_profile_cost: float = 0.0
    total_accessory_cost: float = 0.0
    fabric_cost: float = 0.0
    motor_cost: float = 0.0
    subtotal: float = 0.0
    after_margin: float = 0.0
    grand_total: float = 0.0
    missing_codes: List[str] = field(default_factory=list)

    @property
    def unit_price(self) -> float:
        return self.grand_total / self.quantity

    @property
    def is_partial(self) -> bool:
        return bool(self.missing_codes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["unit_price"] = self.unit_price
        return data


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PricingEngine:

    def __init__(self, catalog: ProductCatalog):
        self.catalog = catalog

    @timed
    def compute_item_price(
        self,
        spec: QuoteItemSpec,
        dealer: Optional[DealerContext] = None,
    ) -> PriceBreakdown:
        """
        Compute the itemized price of one quote item.

        Args:
            spec:   validated item specification (mm dimensions)
            dealer: dealer margin/discount; zero defaults when None

        Returns:
            PriceBreakdown with profile and accessory lines and totals.
        """
        dealer = dealer or NO_DEALER
        width_m = spec.width_mm / 1000
        height_m = spec.height_mm / 1000
        qty = spec.quantity

        if not is_known_system(spec.system_type):
            logger.warning(f"Unknown system type '{spec.system_type}', pricing without accessories")

        result = PriceBreakdown(system_type=spec.system_type, quantity=qty)

        # ── Profiles (priced by mass) ─────────────────────────────────────────
        for profile in self.catalog.find_active_products(ProductCategory.PROFILE, spec.system_type):
            line = self._profile_line(profile, width_m, height_m, qty)
            result.profiles.append(line)
            result.total_profile_kg += line.total_kg
            result.total_profile_cost += line.total_price

        # ── Accessories (system default BOM) ──────────────────────────────────
        codes = get_accessory_codes(spec.system_type)
        found = self.catalog.find_active_by_codes(ProductCategory.ACCESSORY, codes)
        found_codes = {p.code for p in found}
        result.missing_codes = [c for c in codes if c not in found_codes]
        # Rows the catalog could not read count as missing too
        result.missing_codes += [
            c for c in self.catalog.skipped_codes if c not in result.missing_codes
        ]
        if result.missing_codes:
            logger.warning(
                f"{spec.system_type}: catalog codes missing or unreadable, omitted: {result.missing_codes}"
            )
        for accessory in found:
            line = self._accessory_line(accessory, width_m, height_m, qty)
            result.accessories.append(line)
            result.total_accessory_cost += line.total_price

        result.fabric_cost = self._fabric_cost(spec, width_m, height_m)
        result.motor_cost = self._motor_cost(spec)

        result.subtotal = (
            result.total_profile_cost
            + result.total_accessory_cost
            + result.fabric_cost
            + result.motor_cost
        )
        result.after_margin, result.grand_total = apply_dealer_pricing(result.subtotal, dealer)

        logger.debug(
            f"Priced {spec.system_type} {spec.width_mm}x{spec.height_mm} x{qty}: "
            f"subtotal={result.subtotal:.4f} grand_total={result.grand_total:.4f}"
        )
        return result

    def _profile_line(self, profile: Product, width_m: float, height_m: float, qty: int) -> ProfileLine:
        length_m = profile.multipliers.length_for(width_m, height_m)
        total_kg = profile.weight_per_meter * length_m * qty
        return ProfileLine(
            code=profile.code,
            name=profile.name,
            weight_per_meter=profile.weight_per_meter,
            length_m=length_m,
            total_length_m=length_m * qty,
            total_kg=total_kg,
            unit_price=profile.base_price,
            total_price=total_kg * profile.base_price,
        )

    def _accessory_line(self, accessory: Product, width_m: float, height_m: float, qty: int) -> AccessoryLine:
        needed = accessory_quantity(accessory, width_m, height_m, qty)
        return AccessoryLine(
            code=accessory.code,
            name=accessory.name,
            unit=accessory.unit.value,
            quantity=needed,
            unit_price=accessory.base_price,
            total_price=needed * accessory.base_price,
        )

    @staticmethod
    def _fabric_cost(spec: QuoteItemSpec, width_m: float, height_m: float) -> float:
        fabric = spec.fabric
        if not (fabric.included and fabric.price):
            return 0.0
        multiplier = fabric.multiplier or 1
        return width_m * height_m * multiplier * fabric.price * spec.quantity

    @staticmethod
    def _motor_cost(spec: QuoteItemSpec) -> float:
        if not spec.motor.included:
            return 0.0
        cost = 0.0
        if spec.motor.price and spec.motor.count:
            cost += spec.motor.price * spec.motor.count * spec.quantity
        # Remote is gated by the motor flag but counted independently
        if spec.remote.price and spec.remote.count:
            cost += spec.remote.price * spec.remote.count * spec.quantity
        return cost


def accessory_quantity(accessory: Product, width_m: float, height_m: float, qty: int) -> float:
    """Required quantity of an accessory, by unit type and accessory role."""
    if accessory.unit.is_length_based:
        if accessory.accessory_role is AccessoryRole.ZIP_FABRIC:
            return height_m * ZIP_SIDES * qty
        return width_m * qty
    if accessory.accessory_role is AccessoryRole.ZIP_GUIDE:
        return ZIP_GUIDES_PER_PANEL * qty
    return qty


def apply_dealer_pricing(subtotal: float, dealer: DealerContext):
    """Margin first, then discount. Returns (after_margin, grand_total)."""
    after_margin = subtotal
    if dealer.profit_margin > 0:
        after_margin = subtotal * (1 + dealer.profit_margin / 100)
    grand_total = after_margin
    if dealer.discount_rate > 0:
        grand_total = after_margin * (1 - dealer.discount_rate / 100)
    return after_margin, grand_total
