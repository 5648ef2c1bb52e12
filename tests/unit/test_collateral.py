"""
Unit tests for collateral deposits and redemptions.

Tests:
- deposit_collateral: books, custody, events, validation
- redeem_collateral: full and partial, invariant enforcement
- External transfer refusals leave no trace
"""

import pytest

from cdp_ledger import (
    CollateralDeposited, CollateralRedeemed, ENGINE_ACCOUNT, HealthFactorBroken,
    InsufficientCollateral, InvalidArgument, OperationType, OracleUnavailable,
    TransferFailed, UnsupportedAsset, to_units,
)

from tests.fakes import AMOUNT_COLLATERAL, AMOUNT_TO_MINT, WETH_FEED


class TestDepositCollateral:

    def test_credits_book_and_custody(self, engine, custodian):
        receipt = engine.deposit_collateral("alice", "WETH", AMOUNT_COLLATERAL)

        assert engine.collateral_balance("alice", "WETH") == AMOUNT_COLLATERAL
        assert engine.total_deposited("WETH") == AMOUNT_COLLATERAL
        assert custodian.custody_balance("WETH") == AMOUNT_COLLATERAL
        assert custodian.balance_of("alice", "WETH") == to_units(90)

        assert receipt.operation is OperationType.DEPOSIT
        assert receipt.caller == "alice"
        assert receipt.events == (CollateralDeposited("alice", "WETH", AMOUNT_COLLATERAL, receipt.sequence),)

    def test_deposit_without_debt_has_infinite_health(self, deposited):
        info = deposited.account_info("alice")
        assert info.debt_minted == 0
        assert info.collateral_value_usd == to_units(20_000)
        assert deposited.is_liquidatable("alice") is False

    def test_deposits_accumulate(self, engine):
        engine.deposit_collateral("alice", "WETH", to_units(1))
        engine.deposit_collateral("alice", "WETH", to_units(2))
        engine.deposit_collateral("alice", "WBTC", to_units(1))
        assert engine.collateral_balances("alice") == {"WETH": to_units(3), "WBTC": to_units(1)}
        assert engine.account_collateral_value_usd("alice") == to_units(7000)

    def test_zero_amount_rejected(self, engine):
        with pytest.raises(InvalidArgument):
            engine.deposit_collateral("alice", "WETH", 0)
        assert engine.event_log == []

    def test_unsupported_asset_rejected(self, engine, custodian):
        custodian.fund("alice", "DOGE", to_units(1))
        with pytest.raises(UnsupportedAsset):
            engine.deposit_collateral("alice", "DOGE", to_units(1))
        assert custodian.balance_of("alice", "DOGE") == to_units(1)

    def test_empty_caller_rejected(self, engine):
        with pytest.raises(InvalidArgument, match="caller"):
            engine.deposit_collateral("", "WETH", to_units(1))

    def test_refused_transfer_leaves_no_trace(self, engine, custodian):
        before = engine.snapshot()
        custodian.refuse.add("transfer_in")

        with pytest.raises(TransferFailed):
            engine.deposit_collateral("alice", "WETH", AMOUNT_COLLATERAL)

        assert engine.snapshot() == before
        assert engine.event_log == []
        assert custodian.balance_of("alice", "WETH") == to_units(100)

    def test_insufficient_wallet_balance(self, engine):
        with pytest.raises(TransferFailed):
            engine.deposit_collateral("alice", "WETH", to_units(101))
        assert engine.collateral_balance("alice", "WETH") == 0

    def test_deposit_needs_no_price(self, engine, price_source):
        price_source.remove_price(WETH_FEED)
        engine.deposit_collateral("alice", "WETH", AMOUNT_COLLATERAL)
        assert engine.collateral_balance("alice", "WETH") == AMOUNT_COLLATERAL


class TestRedeemCollateral:

    def test_full_redeem_without_debt(self, deposited, custodian):
        receipt = deposited.redeem_collateral("alice", "WETH", AMOUNT_COLLATERAL)

        assert deposited.collateral_balance("alice", "WETH") == 0
        assert deposited.collateral_balances("alice") == {}
        assert custodian.balance_of("alice", "WETH") == to_units(100)
        assert custodian.custody_balance("WETH") == 0
        assert receipt.events == (
            CollateralRedeemed("alice", "alice", "WETH", AMOUNT_COLLATERAL, receipt.sequence),
        )

    def test_partial_redeem_with_debt(self, minted):
        # $20,000 of WETH backs 100 of debt; 9 WETH can leave and keep HF at 10
        minted.redeem_collateral("alice", "WETH", to_units(9))
        assert minted.collateral_balance("alice", "WETH") == to_units(1)
        assert minted.health_factor("alice") == to_units(10)

    def test_redeem_breaking_health_factor_rejected(self, minted):
        before = minted.snapshot()
        with pytest.raises(HealthFactorBroken) as info:
            minted.redeem_collateral("alice", "WETH", AMOUNT_COLLATERAL)
        assert info.value.account == "alice"
        assert info.value.health_factor == 0
        assert minted.snapshot() == before

    def test_redeem_more_than_deposited(self, deposited):
        with pytest.raises(InsufficientCollateral) as info:
            deposited.redeem_collateral("alice", "WETH", AMOUNT_COLLATERAL + 1)
        assert info.value.requested == AMOUNT_COLLATERAL + 1
        assert info.value.available == AMOUNT_COLLATERAL

    def test_redeem_never_deposited_asset(self, deposited):
        with pytest.raises(InsufficientCollateral):
            deposited.redeem_collateral("alice", "WBTC", 1)

    def test_redeem_zero_rejected(self, deposited):
        with pytest.raises(InvalidArgument):
            deposited.redeem_collateral("alice", "WETH", 0)

    def test_refused_push_leaves_books(self, deposited, custodian):
        before = deposited.snapshot()
        custodian.refuse.add("transfer_out")
        with pytest.raises(TransferFailed):
            deposited.redeem_collateral("alice", "WETH", AMOUNT_COLLATERAL)
        assert deposited.snapshot() == before
        assert custodian.custody_balance("WETH") == AMOUNT_COLLATERAL

    def test_debt_free_redeem_needs_no_price(self, deposited, price_source):
        price_source.remove_price(WETH_FEED)
        deposited.redeem_collateral("alice", "WETH", AMOUNT_COLLATERAL)
        assert deposited.collateral_balance("alice", "WETH") == 0

    def test_indebted_redeem_needs_price(self, minted, price_source):
        price_source.remove_price(WETH_FEED)
        with pytest.raises(OracleUnavailable):
            minted.redeem_collateral("alice", "WETH", to_units(1))
        assert minted.collateral_balance("alice", "WETH") == AMOUNT_COLLATERAL

    def test_custody_account_only_holds_deposits(self, minted, custodian):
        assert custodian.balance_of(ENGINE_ACCOUNT, "WETH") == minted.total_deposited("WETH")
        assert minted.debt_of("alice") == AMOUNT_TO_MINT
