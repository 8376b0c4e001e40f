"""Addresses, strategies and basket builders shared by the test modules.

Strategies produce 18-decimal fixed-point ints in ranges where the ledger's
int256 bounds are never the binding constraint.
"""

from __future__ import annotations

from hypothesis import strategies as st
from hypothesis.strategies import SearchStrategy

from basketry.basket import BasketToken
from basketry.core.fixed_point import PRECISE_UNIT, precise_mul_ceil
from basketry.core.result import unwrap
from basketry.core.types import Address
from basketry.infra.memory_adapter import InMemoryTokenBank

# ===================================================================
# ADDRESSES
# ===================================================================

BASKET: Address = "0x" + "b1" * 20
MANAGER: Address = "0x" + "a1" * 20
HOLDER: Address = "0x" + "c1" * 20
ISSUER: Address = "0x" + "c2" * 20
RECIPIENT: Address = "0x" + "c3" * 20
FEE_RECIPIENT: Address = "0x" + "f1" * 20
PROTOCOL: Address = "0x" + "f2" * 20

# Module that only mints the opening supply in tests.
SEED_MODULE: Address = "0x" + "5e" * 20

WETH: Address = "0x" + "e1" * 20
WBTC: Address = "0x" + "e2" * 20
USDC: Address = "0x" + "e3" * 20
DAI: Address = "0x" + "e4" * 20


# ===================================================================
# PRIMITIVE STRATEGIES
# ===================================================================


def fixed_points(
    min_value: int = 0, max_value: int = 10**9 * PRECISE_UNIT,
) -> SearchStrategy[int]:
    """18-decimal fixed-point ints."""
    return st.integers(min_value=min_value, max_value=max_value)


def units() -> SearchStrategy[int]:
    """Positive per-token component units, 1 wei up to 1e6 whole tokens."""
    return st.integers(min_value=1, max_value=10**6 * PRECISE_UNIT)


def supplies() -> SearchStrategy[int]:
    """Basket supplies from one millionth of a token up to 1e9 tokens."""
    return st.integers(min_value=10**12, max_value=10**9 * PRECISE_UNIT)


def fractions(max_value: int = PRECISE_UNIT) -> SearchStrategy[int]:
    """Fee and premium rates as 18-decimal fractions in [0, max_value]."""
    return st.integers(min_value=0, max_value=max_value)


def multipliers() -> SearchStrategy[int]:
    return st.integers(min_value=10**12, max_value=PRECISE_UNIT)


@st.composite
def signed_units(draw: st.DrawFn) -> int:
    """Nonzero units of either sign (negative = debt)."""
    magnitude = draw(units())
    return magnitude if draw(st.booleans()) else -magnitude


# ===================================================================
# BASKET BUILDERS
# ===================================================================


def make_basket(
    components: dict[Address, int] | None = None,
    *,
    supply: int = 0,
    holder: Address = HOLDER,
    modules: tuple[Address, ...] = (),
    decimals: dict[Address, int] | None = None,
    bank: InMemoryTokenBank | None = None,
) -> tuple[BasketToken, InMemoryTokenBank]:
    """A basket holding exactly the collateral its units require.

    ``supply`` basket tokens are minted to ``holder`` through SEED_MODULE,
    and the bank credits the basket with ceil(supply * unit) of each
    component. Listed ``modules`` are left PENDING.
    """
    bank = bank or InMemoryTokenBank()
    for token in (WETH, WBTC, USDC, DAI):
        bank.register_token(token, (decimals or {}).get(token, 6 if token == USDC else 18))
    basket = BasketToken(
        BASKET, MANAGER, bank, components=components, modules=(SEED_MODULE, *modules),
    )
    unwrap(basket.initialize_module(SEED_MODULE))
    if supply:
        unwrap(basket.mint(SEED_MODULE, holder, supply))
        for component, unit in (components or {}).items():
            bank.mint(component, BASKET, precise_mul_ceil(supply, unit))
    return basket, bank


def initialize(basket: BasketToken, *modules: Address) -> None:
    """Move PENDING modules straight to INITIALIZED."""
    for module in modules:
        unwrap(basket.initialize_module(module))
