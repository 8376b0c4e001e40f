"""basketry.fees: streaming fee accrual and airdrop absorption."""

from basketry.fees.airdrop import AirdropModule as AirdropModule
from basketry.fees.airdrop import AirdropSettings as AirdropSettings
from basketry.fees.streaming import StreamingFeeModule as StreamingFeeModule
from basketry.fees.streaming import StreamingFeeSettings as StreamingFeeSettings
