"""Airdrop absorption: fold unexpected component balance into the default unit.

A basket can receive tokens it never asked for (airdrops, rebases). The
ledger only knows ``supply * unit``; anything held above that is
untracked. absorb() takes a fee on the untracked amount and re-derives the
default unit from what is left, so every holder shares the remainder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import final

from basketry.basket import BasketToken
from basketry.core._validation import require_address, require_at_most, val_err
from basketry.core.errors import BasketFailure, illegal_state
from basketry.core.fixed_point import PRECISE_UNIT, Rounding, checked_sub, mul
from basketry.core.result import Err, Ok, first_err
from basketry.core.types import Address
from basketry.infra.config import ProtocolFeeSchedule

logger = logging.getLogger(__name__)

_SOURCE = "fees.airdrop.AirdropModule"


@final
@dataclass(frozen=True, slots=True)
class AirdropSettings:
    approved_tokens: tuple[Address, ...]
    fee_recipient: Address
    airdrop_fee: int = 0
    any_caller_absorb: bool = False


@final
@dataclass(frozen=True, slots=True)
class AbsorbResult:
    token: Address
    airdropped: int
    manager_fee: int
    protocol_fee: int
    new_unit: int


@final
class AirdropModule:
    def __init__(self, address: Address, fee_schedule: ProtocolFeeSchedule | None = None) -> None:
        self.address = address
        self._fees = fee_schedule or ProtocolFeeSchedule()
        self._settings: dict[Address, AirdropSettings] = {}

    # -- lifecycle ----------------------------------------------------------

    def initialize(
        self, basket: BasketToken, caller: Address, settings: AirdropSettings,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.initialize"
        err = first_err(
            basket.require_manager(caller, source),
            basket.require_pending(self.address, source),
            require_at_most(
                settings.airdrop_fee, PRECISE_UNIT, "Fee must be <= 100%.", source, "airdrop_fee",
            ),
            require_address(
                settings.fee_recipient, "Passed address must be non-zero", source, "fee_recipient",
            ),
        )
        if err is not None:
            return err
        if not settings.approved_tokens:
            return val_err(
                "At least one token must be passed.", source,
                path="approved_tokens", constraint="non-empty", actual=0,
            )
        self._settings[basket.address] = replace(
            settings, approved_tokens=tuple(dict.fromkeys(settings.approved_tokens)),
        )
        return basket.initialize_module(self.address)

    def remove(self, basket: BasketToken, caller: Address) -> Ok[None] | Err[BasketFailure]:
        match basket.remove_module(caller, self.address):
            case Err() as err:
                return err
        del self._settings[basket.address]
        return Ok(None)

    def settings(self, basket: BasketToken) -> AirdropSettings | None:
        return self._settings.get(basket.address)

    def get_airdrops(self, basket: BasketToken) -> tuple[Address, ...]:
        s = self._settings.get(basket.address)
        return s.approved_tokens if s is not None else ()

    def is_airdrop_token(self, basket: BasketToken, token: Address) -> bool:
        return token in self.get_airdrops(basket)

    # -- absorption ---------------------------------------------------------

    def absorb(
        self, basket: BasketToken, caller: Address, token: Address,
    ) -> Ok[AbsorbResult] | Err[BasketFailure]:
        return self.batch_absorb(basket, caller, (token,)).map(lambda results: results[0])

    def batch_absorb(
        self, basket: BasketToken, caller: Address, tokens: tuple[Address, ...],
    ) -> Ok[tuple[AbsorbResult, ...]] | Err[BasketFailure]:
        """Absorb each token in order; all or nothing."""
        source = f"{_SOURCE}.absorb"
        match self._settings_for(basket, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if not (s.any_caller_absorb or caller == basket.manager):
            return Err(illegal_state(
                "Must be valid caller", source,
                state="CALLER", required="MANAGER_OR_ANY_CALLER", code="UNAUTHORIZED",
            ))
        for token in tokens:
            if token not in s.approved_tokens:
                return val_err(
                    "Must be approved token.", source,
                    path="token", constraint="approved airdrop token", actual=token,
                )
        return basket.atomic(lambda: self._absorb_all(basket, s, tokens))

    # -- settings updates ---------------------------------------------------

    def add_airdrop(
        self, basket: BasketToken, caller: Address, token: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.add_airdrop"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if token in s.approved_tokens:
            return val_err("Token already added.", source, path="token", actual=token)
        self._settings[basket.address] = replace(s, approved_tokens=(*s.approved_tokens, token))
        return Ok(None)

    def remove_airdrop(
        self, basket: BasketToken, caller: Address, token: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.remove_airdrop"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        if token not in s.approved_tokens:
            return val_err("Token not added.", source, path="token", actual=token)
        self._settings[basket.address] = replace(
            s, approved_tokens=tuple(t for t in s.approved_tokens if t != token),
        )
        return Ok(None)

    def update_airdrop_fee(
        self, basket: BasketToken, caller: Address, new_fee: int,
    ) -> Ok[None] | Err[BasketFailure]:
        """Absorb everything pending at the old fee, then switch."""
        source = f"{_SOURCE}.update_airdrop_fee"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_at_most(
            new_fee, PRECISE_UNIT, "Airdrop fee can't exceed 100%", source, "new_fee",
        ):
            case Err() as err:
                return err

        def run() -> Ok[None] | Err[BasketFailure]:
            match self._absorb_all(basket, s, s.approved_tokens):
                case Err() as err:
                    return err
            self._settings[basket.address] = replace(s, airdrop_fee=new_fee)
            return Ok(None)

        return basket.atomic(run)

    def update_fee_recipient(
        self, basket: BasketToken, caller: Address, new_recipient: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_fee_recipient"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_address(
            new_recipient, "Passed address must be non-zero", source, "new_recipient",
        ):
            case Err() as err:
                return err
        self._settings[basket.address] = replace(s, fee_recipient=new_recipient)
        return Ok(None)

    def update_any_caller_absorb(
        self, basket: BasketToken, caller: Address, any_caller_absorb: bool,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_any_caller_absorb"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        self._settings[basket.address] = replace(s, any_caller_absorb=any_caller_absorb)
        return Ok(None)

    # -- internals ----------------------------------------------------------

    def _absorb_all(
        self, basket: BasketToken, s: AirdropSettings, tokens: tuple[Address, ...],
    ) -> Ok[tuple[AbsorbResult, ...]] | Err[BasketFailure]:
        results: list[AbsorbResult] = []
        for token in tokens:
            match self._absorb_one(basket, s, token):
                case Err() as err:
                    return err
                case Ok(result):
                    results.append(result)
        return Ok(tuple(results))

    def _absorb_one(
        self, basket: BasketToken, s: AirdropSettings, token: Address,
    ) -> Ok[AbsorbResult] | Err[BasketFailure]:
        supply = basket.total_supply()
        balance = basket.component_balance(token)
        implied_notional = basket.get_tracked_balance(token)
        airdropped = balance - implied_notional
        if airdropped <= 0:
            return Ok(AbsorbResult(
                token=token, airdropped=0, manager_fee=0, protocol_fee=0,
                new_unit=basket.get_default_position_virtual_unit(token),
            ))

        total_fee = mul(airdropped, s.airdrop_fee, Rounding.DOWN_FOR_PROTOCOL_SAFETY)
        protocol_fee = mul(total_fee, self._fees.airdrop_fee_split, Rounding.DOWN_FOR_PROTOCOL_SAFETY)
        manager_fee = checked_sub(total_fee, protocol_fee)
        for recipient, fee in (
            (s.fee_recipient, manager_fee),
            (self._fees.protocol_fee_recipient, protocol_fee),
        ):
            match basket.invoke_transfer(self.address, token, recipient, fee):
                case Err() as err:
                    return err

        match basket.calculate_and_edit_default_position(
            self.address, token, supply, implied_notional,
        ):
            case Err() as err:
                return err
            case Ok(edit):
                pass
        logger.info(
            "absorbed %d of %s into %s (fees %d + %d), unit %d -> %d",
            airdropped, token, basket.address, manager_fee, protocol_fee,
            edit.previous_unit, edit.new_unit,
        )
        return Ok(AbsorbResult(
            token=token,
            airdropped=airdropped,
            manager_fee=manager_fee,
            protocol_fee=protocol_fee,
            new_unit=edit.new_unit,
        ))

    def _settings_for(
        self, basket: BasketToken, source: str,
    ) -> Ok[AirdropSettings] | Err[BasketFailure]:
        match basket.require_initialized(self.address, source):
            case Err() as err:
                return err
        s = self._settings.get(basket.address)
        if s is None:
            return Err(illegal_state(
                "Airdrop settings not initialized", source,
                state="UNINITIALIZED", required="INITIALIZED",
            ))
        return Ok(s)

    def _managed_settings(
        self, basket: BasketToken, caller: Address, source: str,
    ) -> Ok[AirdropSettings] | Err[BasketFailure]:
        match basket.require_manager(caller, source):
            case Err() as err:
                return err
        return self._settings_for(basket, source)
