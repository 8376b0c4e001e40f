"""basketry.issuance: NAV (single reserve asset) and component issuance."""

from basketry.issuance.debt_module import DebtIssuanceModule as DebtIssuanceModule
from basketry.issuance.debt_module import DebtIssuanceSettings as DebtIssuanceSettings
from basketry.issuance.nav_module import NavIssuanceModule as NavIssuanceModule
from basketry.issuance.nav_module import NavIssuanceSettings as NavIssuanceSettings
