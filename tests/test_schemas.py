"""Tests for request schemas and sniper configuration."""

import pytest
from pydantic import ValidationError

from sniper.errors import ValidationError as EngineValidationError
from sniper.schemas.position import PositionLevelsUpdate
from sniper.schemas.sniper_config import SniperConfigUpdate
from sniper.schemas.trade import TradeIntent
from sniper.services.sniper_config import build_snipe_intent, get_sniper_config, save_sniper_config

from fakes import TOKEN


def _intent(**overrides):
    data = {
        "user_id": 1,
        "wallet_id": 1,
        "token_address": TOKEN,
        "trade_type": "BUY",
        "amount_sol": 0.5,
    }
    data.update(overrides)
    return TradeIntent(**data)


# ---------------------------------------------------------------------------
# 1. Trade intent
# ---------------------------------------------------------------------------

class TestTradeIntent:
    def test_defaults(self):
        intent = _intent()
        assert intent.slippage_bps == 500
        assert intent.transaction_speed == "standard"
        assert intent.use_mev_protection is False
        assert intent.token_amount is None

    def test_address_whitespace_stripped(self):
        assert _intent(token_address=f"  {TOKEN} ").token_address == TOKEN

    @pytest.mark.parametrize("overrides", [
        {"token_address": "not-an-address"},
        {"token_address": "0OIl" * 10},
        {"amount_sol": 0},
        {"trade_type": "HOLD"},
        {"slippage_bps": 10_001},
        {"transaction_speed": "turbo"},
        {"compute_unit_limit": 1_400_001},
        {"jito_tip_lamports": -1},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(ValidationError):
            _intent(**overrides)


class TestPositionLevels:
    def test_bounds_inclusive(self):
        levels = PositionLevelsUpdate(take_profit_percent=10_000, stop_loss_percent=100)
        assert levels.take_profit_percent == 10_000

    def test_none_disables(self):
        levels = PositionLevelsUpdate()
        assert levels.take_profit_percent is None
        assert levels.stop_loss_percent is None


# ---------------------------------------------------------------------------
# 2. Sniper config partial update
# ---------------------------------------------------------------------------

class TestSniperConfig:
    def test_changes_skip_unset_fields(self):
        assert SniperConfigUpdate(slippage_bps=100).changes() == {"slippage_bps": 100}

    def test_first_save_uses_defaults(self, user):
        config = save_sniper_config(user.id, SniperConfigUpdate(transaction_speed="fast"))
        assert config.transaction_speed == "fast"
        assert config.take_profit_percentage == 200.0
        assert config.stop_loss_percentage == 30.0
        assert config.slippage_bps == 500
        assert config.max_buy_amount_sol == 0.5

    def test_partial_update_keeps_other_fields(self, user):
        save_sniper_config(user.id, SniperConfigUpdate(slippage_bps=300, mev_protection=True))
        updated = save_sniper_config(user.id, SniperConfigUpdate(max_buy_amount_sol=1.25))

        assert updated.slippage_bps == 300
        assert updated.mev_protection is True
        assert updated.max_buy_amount_sol == 1.25
        assert get_sniper_config(user.id).id == updated.id

    def test_missing_config(self, user):
        assert get_sniper_config(user.id) is None

    def test_snipe_intent_from_config(self, user, wallet):
        config = save_sniper_config(user.id, SniperConfigUpdate(
            wallet_id=wallet.id,
            max_buy_amount_sol=0.2,
            slippage_bps=800,
            mev_protection=True,
            transaction_speed="ultra",
            compute_unit_limit=350_000,
        ))

        intent = build_snipe_intent(config, TOKEN)

        assert intent.trade_type == "BUY"
        assert intent.wallet_id == wallet.id
        assert intent.amount_sol == 0.2
        assert intent.slippage_bps == 800
        assert intent.use_mev_protection is True
        assert intent.transaction_speed == "ultra"
        assert intent.compute_unit_limit == 350_000
        assert intent.compute_unit_price is None

    def test_snipe_intent_requires_wallet(self, user):
        config = save_sniper_config(user.id, SniperConfigUpdate())
        with pytest.raises(EngineValidationError):
            build_snipe_intent(config, TOKEN)
