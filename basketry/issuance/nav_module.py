"""NAV issuance module: issue and redeem a basket against one reserve asset.

Per-basket settings live here, keyed by basket address; the module acts on
a basket only once the basket's manager has initialized it.

issue():  pre-issue hook -> quote -> reserve in -> check -> fees out ->
          mint -> multiplier and reserve unit -> check
redeem(): pre-redeem hook -> quote -> burn -> multiplier and reserve unit
          -> reserve and fees out -> check

Both run inside BasketToken.atomic, so any Err restores every balance and
every position.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import final

from basketry.basket import BasketToken
from basketry.core._validation import (
    require_address,
    require_at_most,
    require_below,
    require_positive,
    val_err,
)
from basketry.core.errors import BasketFailure, policy_rejection
from basketry.core.fixed_point import PRECISE_UNIT, Rounding, guarded, mul
from basketry.core.result import Err, Ok, first_err
from basketry.core.types import Address
from basketry.infra.config import ProtocolFeeSchedule
from basketry.infra.protocols import ManagerIssuanceHook, ValuationOracle
from basketry.issuance import nav
from basketry.ledger.collateralization import (
    validate_post_transfer_in,
    validate_post_transfer_out,
)

logger = logging.getLogger(__name__)

_SOURCE = "issuance.nav_module.NavIssuanceModule"

ISSUE = 0
REDEEM = 1


@final
@dataclass(frozen=True, slots=True)
class NavIssuanceSettings:
    """Manager-chosen parameters. Fractions are 18-decimal (1e18 == 100%)."""

    reserve_assets: tuple[Address, ...]
    fee_recipient: Address
    manager_fees: tuple[int, int]  # (issue, redeem)
    max_manager_fee: int
    premium_percentage: int
    max_premium_percentage: int
    min_supply: int
    manager_issuance_hook: ManagerIssuanceHook | None = None
    manager_redemption_hook: ManagerIssuanceHook | None = None
    valuer: ValuationOracle | None = None  # overrides the module default


@final
@dataclass(frozen=True, slots=True)
class ActionInfo:
    """Everything one issue or redeem computed and applied."""

    reserve_asset: Address
    pre_fee_reserve_quantity: int
    protocol_fees: int
    manager_fee: int
    net_flow_quantity: int
    basket_quantity: int
    previous_supply: int
    new_supply: int
    new_position_multiplier: int
    new_reserve_position_unit: int


def _validate_settings(settings: NavIssuanceSettings, source: str) -> Ok[None] | Err[BasketFailure]:
    issue_fee, redeem_fee = settings.manager_fees
    err = first_err(
        require_positive(
            len(settings.reserve_assets), "Reserve assets must be greater than 0",
            source, "reserve_assets",
        ),
        require_at_most(
            issue_fee, settings.max_manager_fee, "Manager issue fee must be less than max",
            source, "manager_fees[0]",
        ),
        require_at_most(
            redeem_fee, settings.max_manager_fee, "Manager redeem fee must be less than max",
            source, "manager_fees[1]",
        ),
        require_below(
            settings.max_manager_fee, PRECISE_UNIT, "Max manager fee must be less than 100%",
            source, "max_manager_fee",
        ),
        require_at_most(
            settings.premium_percentage, settings.max_premium_percentage,
            "Premium must be less than max", source, "premium_percentage",
        ),
        require_below(
            settings.max_premium_percentage, PRECISE_UNIT,
            "Max premium percentage must be less than 100%", source, "max_premium_percentage",
        ),
        require_address(
            settings.fee_recipient, "Fee Recipient must be non-zero address.",
            source, "fee_recipient",
        ),
        require_positive(
            settings.min_supply, "Min basket supply must be greater than 0", source, "min_supply",
        ),
    )
    if err is not None:
        return err
    if len(set(settings.reserve_assets)) != len(settings.reserve_assets):
        return val_err(
            "Reserve assets must be unique", source,
            path="reserve_assets", constraint="unique", actual=settings.reserve_assets,
        )
    return Ok(None)


@final
class NavIssuanceModule:
    """Reserve-asset issuance priced off a valuation oracle."""

    def __init__(
        self,
        address: Address,
        valuer: ValuationOracle,
        fee_schedule: ProtocolFeeSchedule | None = None,
    ) -> None:
        self.address = address
        self._valuer = valuer
        self._fees = fee_schedule or ProtocolFeeSchedule()
        self._settings: dict[Address, NavIssuanceSettings] = {}

    # -- lifecycle ----------------------------------------------------------

    def initialize(
        self, basket: BasketToken, caller: Address, settings: NavIssuanceSettings,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.initialize"
        err = first_err(
            basket.require_manager(caller, source),
            basket.require_pending(self.address, source),
            _validate_settings(settings, source),
        )
        if err is not None:
            return err
        self._settings[basket.address] = settings
        logger.info("nav issuance initialized on %s", basket.address)
        return basket.initialize_module(self.address)

    def remove(self, basket: BasketToken, caller: Address) -> Ok[None] | Err[BasketFailure]:
        match basket.remove_module(caller, self.address):
            case Err() as err:
                return err
        del self._settings[basket.address]
        return Ok(None)

    def settings(self, basket: BasketToken) -> NavIssuanceSettings | None:
        return self._settings.get(basket.address)

    # -- queries ------------------------------------------------------------

    def get_reserve_assets(self, basket: BasketToken) -> tuple[Address, ...]:
        s = self.settings(basket)
        return s.reserve_assets if s is not None else ()

    def is_reserve_asset(self, basket: BasketToken, asset: Address) -> bool:
        return asset in self.get_reserve_assets(basket)

    def get_issue_premium(self, basket: BasketToken) -> int:
        s = self.settings(basket)
        return s.premium_percentage if s is not None else 0

    def get_redeem_premium(self, basket: BasketToken) -> int:
        return self.get_issue_premium(basket)

    def get_manager_fee(self, basket: BasketToken, index: int) -> int:
        s = self.settings(basket)
        return s.manager_fees[index] if s is not None else 0

    def get_expected_issue_quantity(
        self, basket: BasketToken, reserve_asset: Address, reserve_quantity: int,
    ) -> Ok[int] | Err[BasketFailure]:
        match self._issuance_info(basket, reserve_asset, reserve_quantity):
            case Err() as err:
                return err
            case Ok(info):
                return Ok(info.basket_quantity)

    def get_expected_redeem_quantity(
        self, basket: BasketToken, reserve_asset: Address, quantity: int,
    ) -> Ok[int] | Err[BasketFailure]:
        match self._redemption_info(basket, reserve_asset, quantity):
            case Err() as err:
                return err
            case Ok(info):
                return Ok(info.net_flow_quantity)

    def is_issue_valid(self, basket: BasketToken, reserve_asset: Address, reserve_quantity: int) -> bool:
        source = f"{_SOURCE}.is_issue_valid"
        return self._validate_issue(basket, reserve_asset, reserve_quantity, source) is None

    def is_redeem_valid(self, basket: BasketToken, reserve_asset: Address, quantity: int) -> bool:
        source = f"{_SOURCE}.is_redeem_valid"
        if self._validate_redeem(basket, reserve_asset, quantity, source) is not None:
            return False
        return isinstance(self._redemption_info(basket, reserve_asset, quantity), Ok)

    # -- issue / redeem -----------------------------------------------------

    def issue(
        self,
        basket: BasketToken,
        caller: Address,
        reserve_asset: Address,
        reserve_quantity: int,
        min_basket_received: int,
        to: Address,
    ) -> Ok[ActionInfo] | Err[BasketFailure]:
        """Deposit ``reserve_quantity`` of reserve asset, mint basket tokens to ``to``."""
        source = f"{_SOURCE}.issue"
        err = self._validate_issue(basket, reserve_asset, reserve_quantity, source)
        if err is not None:
            return err
        settings = self._settings[basket.address]

        def run() -> Ok[ActionInfo] | Err[BasketFailure]:
            if settings.manager_issuance_hook is not None:
                match settings.manager_issuance_hook.invoke_pre_issue_hook(
                    basket, reserve_quantity, caller, to,
                ):
                    case Err() as e:
                        return e

            match self._issuance_info(basket, reserve_asset, reserve_quantity):
                case Err() as e:
                    return e
                case Ok(info):
                    pass
            if info.basket_quantity < min_basket_received:
                return Err(policy_rejection(
                    "Must be greater than min basket token", source,
                    policy="MIN_BASKET_RECEIVED",
                    limit=min_basket_received, actual=info.basket_quantity,
                ))

            initial_balance = basket.component_balance(reserve_asset)
            match basket.bank.transfer(reserve_asset, caller, basket.address, reserve_quantity):
                case Err() as e:
                    return e
            match validate_post_transfer_in(
                basket, reserve_asset, info.previous_supply, reserve_quantity, initial_balance,
            ):
                case Err() as e:
                    return e

            return self._settle(basket, settings, info, to, is_issue=True)

        result = basket.atomic(run)
        if isinstance(result, Ok):
            logger.info(
                "issued %d of %s for %d %s",
                result.value.basket_quantity, basket.address, reserve_quantity, reserve_asset,
            )
        return result

    def redeem(
        self,
        basket: BasketToken,
        caller: Address,
        reserve_asset: Address,
        quantity: int,
        min_reserve_received: int,
        to: Address,
    ) -> Ok[ActionInfo] | Err[BasketFailure]:
        """Burn ``quantity`` basket tokens from ``caller``, pay reserve asset to ``to``."""
        source = f"{_SOURCE}.redeem"
        err = self._validate_redeem(basket, reserve_asset, quantity, source)
        if err is not None:
            return err
        settings = self._settings[basket.address]

        def run() -> Ok[ActionInfo] | Err[BasketFailure]:
            if settings.manager_redemption_hook is not None:
                match settings.manager_redemption_hook.invoke_pre_redeem_hook(
                    basket, quantity, caller, to,
                ):
                    case Err() as e:
                        return e

            match self._redemption_info(basket, reserve_asset, quantity):
                case Err() as e:
                    return e
                case Ok(info):
                    pass
            if info.net_flow_quantity < min_reserve_received:
                return Err(policy_rejection(
                    "Must be greater than min receive reserve quantity", source,
                    policy="MIN_RESERVE_RECEIVED",
                    limit=min_reserve_received, actual=info.net_flow_quantity,
                ))

            match basket.burn(self.address, caller, quantity):
                case Err() as e:
                    return e
            return self._settle(basket, settings, info, to, is_issue=False)

        result = basket.atomic(run)
        if isinstance(result, Ok):
            logger.info(
                "redeemed %d of %s for %d %s",
                quantity, basket.address, result.value.net_flow_quantity, reserve_asset,
            )
        return result

    # -- manager settings ---------------------------------------------------

    def add_reserve_asset(
        self, basket: BasketToken, caller: Address, asset: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.add_reserve_asset"
        match self._require_manager_of_initialized(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if asset in s.reserve_assets:
            return val_err("Reserve asset already exists", source, path="asset", actual=asset)
        self._settings[basket.address] = replace(s, reserve_assets=(*s.reserve_assets, asset))
        return Ok(None)

    def remove_reserve_asset(
        self, basket: BasketToken, caller: Address, asset: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.remove_reserve_asset"
        match self._require_manager_of_initialized(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if asset not in s.reserve_assets:
            return val_err("Reserve asset does not exist", source, path="asset", actual=asset)
        self._settings[basket.address] = replace(
            s, reserve_assets=tuple(a for a in s.reserve_assets if a != asset),
        )
        return Ok(None)

    def edit_premium(
        self, basket: BasketToken, caller: Address, premium: int,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.edit_premium"
        match self._require_manager_of_initialized(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_at_most(
            premium, s.max_premium_percentage,
            "Premium must be less than maximum allowed", source, "premium",
        ):
            case Err() as err:
                return err
        self._settings[basket.address] = replace(s, premium_percentage=premium)
        return Ok(None)

    def edit_manager_fee(
        self, basket: BasketToken, caller: Address, fee: int, index: int,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.edit_manager_fee"
        match self._require_manager_of_initialized(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if index not in (ISSUE, REDEEM):
            return val_err("Fee index must be 0 or 1", source, path="index", actual=index)
        match require_at_most(
            fee, s.max_manager_fee, "Manager fee must be less than maximum allowed", source, "fee",
        ):
            case Err() as err:
                return err
        fees = list(s.manager_fees)
        fees[index] = fee
        self._settings[basket.address] = replace(s, manager_fees=(fees[0], fees[1]))
        return Ok(None)

    def edit_fee_recipient(
        self, basket: BasketToken, caller: Address, recipient: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.edit_fee_recipient"
        match self._require_manager_of_initialized(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_address(
            recipient, "Fee recipient must not be 0 address", source, "recipient",
        ):
            case Err() as err:
                return err
        self._settings[basket.address] = replace(s, fee_recipient=recipient)
        return Ok(None)

    # -- internals ----------------------------------------------------------

    def _require_manager_of_initialized(
        self, basket: BasketToken, caller: Address, source: str,
    ) -> Ok[NavIssuanceSettings] | Err[BasketFailure]:
        err = first_err(
            basket.require_manager(caller, source),
            basket.require_initialized(self.address, source),
        )
        if err is not None:
            return err
        return Ok(self._settings[basket.address])

    def _validate_common(
        self, basket: BasketToken, reserve_asset: Address, quantity: int, source: str,
    ) -> Err[BasketFailure] | None:
        err = first_err(
            basket.require_initialized(self.address, source),
            require_positive(quantity, "Quantity must be > 0", source, "quantity"),
        )
        if err is not None:
            return err
        if not self.is_reserve_asset(basket, reserve_asset):
            return val_err(
                "Must be valid reserve asset", source, path="reserve_asset", actual=reserve_asset,
            )
        return None

    def _validate_issue(
        self, basket: BasketToken, reserve_asset: Address, reserve_quantity: int, source: str,
    ) -> Err[BasketFailure] | None:
        err = self._validate_common(basket, reserve_asset, reserve_quantity, source)
        if err is not None:
            return err
        min_supply = self._settings[basket.address].min_supply
        if basket.total_supply() < min_supply:
            return Err(policy_rejection(
                "Supply must be greater than minimum to enable issuance", source,
                policy="MIN_SUPPLY", limit=min_supply, actual=basket.total_supply(),
            ))
        return None

    def _validate_redeem(
        self, basket: BasketToken, reserve_asset: Address, quantity: int, source: str,
    ) -> Err[BasketFailure] | None:
        err = self._validate_common(basket, reserve_asset, quantity, source)
        if err is not None:
            return err
        min_supply = self._settings[basket.address].min_supply
        remaining = basket.total_supply() - quantity
        if remaining < min_supply:
            return Err(policy_rejection(
                "Supply must be greater than minimum to enable redemption", source,
                policy="MIN_SUPPLY", limit=min_supply, actual=remaining,
            ))
        return None

    def _valuation(self, basket: BasketToken, reserve_asset: Address) -> Ok[int] | Err[BasketFailure]:
        s = self._settings[basket.address]
        valuer = s.valuer if s.valuer is not None else self._valuer
        return valuer.calculate_valuation(basket, reserve_asset)

    def _issuance_info(
        self, basket: BasketToken, reserve_asset: Address, reserve_quantity: int,
    ) -> Ok[ActionInfo] | Err[BasketFailure]:
        source = f"{_SOURCE}.issue"
        err = self._validate_issue(basket, reserve_asset, reserve_quantity, source)
        if err is not None:
            return err
        match self._valuation(basket, reserve_asset):
            case Err() as e:
                return e
            case Ok(valuation):
                pass

        manager_rate = self.get_manager_fee(basket, ISSUE)
        protocol_rate = self._fees.nav_issuance_fee
        premium = self.get_issue_premium(basket)
        base_units = 10 ** basket.bank.decimals(reserve_asset)
        supply = basket.total_supply()
        multiplier = basket.get_position_multiplier()
        previous_unit = basket.get_default_position_virtual_unit(reserve_asset)

        def compute() -> ActionInfo:
            down = Rounding.DOWN_FOR_PROTOCOL_SAFETY
            protocol_fees = mul(reserve_quantity, protocol_rate, down)
            manager_fee = mul(reserve_quantity, manager_rate, down)
            minted = nav.issue_quantity(
                reserve_quantity, supply=supply, valuation=valuation,
                reserve_base_units=base_units, manager_fee=manager_rate,
                protocol_fee=protocol_rate, premium=premium,
            )
            new_supply = supply + minted
            new_multiplier = nav.issue_position_multiplier(multiplier, supply, new_supply)
            return ActionInfo(
                reserve_asset=reserve_asset,
                pre_fee_reserve_quantity=reserve_quantity,
                protocol_fees=protocol_fees,
                manager_fee=manager_fee,
                net_flow_quantity=nav.post_fee_quantity(reserve_quantity, manager_rate, protocol_rate),
                basket_quantity=minted,
                previous_supply=supply,
                new_supply=new_supply,
                new_position_multiplier=new_multiplier,
                new_reserve_position_unit=nav.issue_position_unit(
                    previous_unit, reserve_quantity,
                    previous_supply=supply, new_supply=new_supply, multiplier=new_multiplier,
                    manager_fee=manager_rate, protocol_fee=protocol_rate,
                ),
            )

        return guarded("nav_issue_quote", source, compute)

    def _redemption_info(
        self, basket: BasketToken, reserve_asset: Address, quantity: int,
    ) -> Ok[ActionInfo] | Err[BasketFailure]:
        source = f"{_SOURCE}.redeem"
        err = self._validate_redeem(basket, reserve_asset, quantity, source)
        if err is not None:
            return err
        match self._valuation(basket, reserve_asset):
            case Err() as e:
                return e
            case Ok(valuation):
                pass

        manager_rate = self.get_manager_fee(basket, REDEEM)
        protocol_rate = self._fees.nav_redemption_fee
        premium = self.get_redeem_premium(basket)
        base_units = 10 ** basket.bank.decimals(reserve_asset)
        supply = basket.total_supply()
        new_supply = supply - quantity
        multiplier = basket.get_position_multiplier()
        previous_unit = basket.get_default_position_virtual_unit(reserve_asset)

        match guarded(
            "nav_redeem_gross", source,
            lambda: (
                nav.redeem_gross_reserve_quantity(
                    quantity, valuation=valuation, reserve_base_units=base_units, premium=premium,
                ),
                mul(supply, previous_unit, Rounding.DOWN_FOR_PROTOCOL_SAFETY),
            ),
        ):
            case Err() as e:
                return e
            case Ok((gross, available)):
                pass
        if gross > available:
            return Err(policy_rejection(
                "Must be greater than total available collateral", source,
                policy="AVAILABLE_COLLATERAL", limit=available, actual=gross,
            ))

        def compute() -> ActionInfo:
            down = Rounding.DOWN_FOR_PROTOCOL_SAFETY
            new_multiplier = nav.redeem_position_multiplier(multiplier, supply, new_supply)
            return ActionInfo(
                reserve_asset=reserve_asset,
                pre_fee_reserve_quantity=gross,
                protocol_fees=mul(gross, protocol_rate, down),
                manager_fee=mul(gross, manager_rate, down),
                net_flow_quantity=nav.redeem_reserve_quantity(
                    quantity, valuation=valuation, reserve_base_units=base_units,
                    manager_fee=manager_rate, protocol_fee=protocol_rate, premium=premium,
                ),
                basket_quantity=quantity,
                previous_supply=supply,
                new_supply=new_supply,
                new_position_multiplier=new_multiplier,
                new_reserve_position_unit=nav.redeem_position_unit(
                    previous_unit, quantity,
                    valuation=valuation, reserve_base_units=base_units,
                    previous_supply=supply, new_supply=new_supply,
                    multiplier=new_multiplier, premium=premium,
                ),
            )

        return guarded("nav_redeem_quote", source, compute)

    def _settle(
        self,
        basket: BasketToken,
        settings: NavIssuanceSettings,
        info: ActionInfo,
        to: Address,
        *,
        is_issue: bool,
    ) -> Ok[ActionInfo] | Err[BasketFailure]:
        """Fee transfers, supply change, multiplier and unit writes, final check."""
        reserve = info.reserve_asset
        outflows: list[tuple[Address, int]] = [
            (self._fees.protocol_fee_recipient, info.protocol_fees),
            (settings.fee_recipient, info.manager_fee),
        ]
        if is_issue:
            match basket.mint(self.address, to, info.basket_quantity):
                case Err() as e:
                    return e
        else:
            outflows.insert(0, (to, info.net_flow_quantity))

        # Multiplier first: the reserve unit is written at the new multiplier.
        match basket.edit_position_multiplier(self.address, info.new_position_multiplier):
            case Err() as e:
                return e
        match basket.edit_default_position_unit(
            self.address, reserve, info.new_reserve_position_unit,
        ):
            case Err() as e:
                return e
        info = replace(
            info, new_reserve_position_unit=basket.get_default_position_virtual_unit(reserve),
        )

        for recipient, amount in outflows:
            match basket.invoke_transfer(self.address, reserve, recipient, amount):
                case Err() as e:
                    return e

        match validate_post_transfer_out(basket, reserve, info.new_supply):
            case Err() as e:
                return e
        return Ok(info)
