"""
Unit tests for minting and burning debt.

Tests:
- deposit_collateral_and_mint and mint_debt under the solvency invariant
- burn_debt and redeem_collateral_for_debt
- Compensation when the debt issuer refuses part of an operation
"""

import pytest

from cdp_ledger import (
    CollateralDeposited, CollateralRedeemed, DebtBurned, DebtMinted, ENGINE_ACCOUNT,
    HealthFactorBroken, InsufficientDebt, InvalidArgument, MintFailed,
    OperationType, TransferFailed, to_units,
)

from tests.fakes import AMOUNT_COLLATERAL, AMOUNT_TO_MINT


class TestDepositAndMint:

    def test_deposit_and_mint(self, engine, custodian, token):
        receipt = engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)

        assert engine.collateral_balance("alice", "WETH") == AMOUNT_COLLATERAL
        assert engine.debt_of("alice") == AMOUNT_TO_MINT
        assert token.balance_of("alice") == AMOUNT_TO_MINT
        assert token.total_supply == AMOUNT_TO_MINT
        assert custodian.custody_balance("WETH") == AMOUNT_COLLATERAL

        assert receipt.operation is OperationType.DEPOSIT_AND_MINT
        assert [type(e) for e in receipt.events] == [CollateralDeposited, DebtMinted]

    def test_minting_past_the_threshold_is_rejected(self, engine, custodian, token):
        # 10 WETH at $2,000 = $20,000; minting $20,000 gives HF 0.5
        amount_to_mint = to_units(20_000)
        expected_health_factor = engine.compute_health_factor(
            amount_to_mint, engine.usd_value("WETH", AMOUNT_COLLATERAL)
        )
        assert expected_health_factor == 5 * 10 ** 17

        with pytest.raises(HealthFactorBroken) as info:
            engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, amount_to_mint)
        assert info.value.health_factor == expected_health_factor

        assert engine.collateral_balance("alice", "WETH") == 0
        assert engine.debt_of("alice") == 0
        assert custodian.balance_of("alice", "WETH") == to_units(100)
        assert token.total_supply == 0
        assert engine.event_log == []

    def test_mint_exactly_to_minimum(self, engine):
        engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, to_units(10_000))
        assert engine.health_factor("alice") == 10 ** 18

    def test_one_wei_past_minimum(self, engine):
        with pytest.raises(HealthFactorBroken):
            engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, to_units(10_000) + 1)

    def test_zero_debt_rejected(self, engine):
        with pytest.raises(InvalidArgument, match="debt_amount"):
            engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, 0)

    def test_refused_mint_refunds_collateral(self, engine, custodian, token):
        token.refuse.add("mint")
        before = engine.snapshot()

        with pytest.raises(MintFailed) as info:
            engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)
        assert info.value.account == "alice"

        assert engine.snapshot() == before
        assert custodian.balance_of("alice", "WETH") == to_units(100)
        assert custodian.custody_balance("WETH") == 0

    def test_collateral_pulled_before_debt_issued(self, engine, custodian, token):
        engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)
        assert custodian.calls == [("transfer_in", "WETH", "alice", AMOUNT_COLLATERAL)]
        assert token.calls == [("mint", "alice", AMOUNT_TO_MINT)]


class TestMintDebt:

    def test_mint_against_deposit(self, deposited, token):
        receipt = deposited.mint_debt("alice", AMOUNT_TO_MINT)
        assert deposited.debt_of("alice") == AMOUNT_TO_MINT
        assert token.balance_of("alice") == AMOUNT_TO_MINT
        assert receipt.events == (DebtMinted("alice", AMOUNT_TO_MINT, receipt.sequence),)

    def test_mint_without_collateral(self, engine):
        with pytest.raises(HealthFactorBroken) as info:
            engine.mint_debt("alice", 1)
        assert info.value.health_factor == 0

    def test_mint_breaking_health_factor(self, deposited):
        with pytest.raises(HealthFactorBroken):
            deposited.mint_debt("alice", to_units(10_001))
        assert deposited.debt_of("alice") == 0

    def test_mints_accumulate(self, deposited):
        deposited.mint_debt("alice", to_units(4000))
        deposited.mint_debt("alice", to_units(6000))
        assert deposited.debt_of("alice") == to_units(10_000)
        with pytest.raises(HealthFactorBroken):
            deposited.mint_debt("alice", 1)

    def test_zero_mint_rejected(self, deposited, token):
        before = deposited.snapshot()
        with pytest.raises(InvalidArgument):
            deposited.mint_debt("alice", 0)
        assert deposited.snapshot() == before
        assert token.total_supply == 0
        assert token.calls == []

    def test_refused_mint(self, deposited, token):
        token.refuse.add("mint")
        with pytest.raises(MintFailed):
            deposited.mint_debt("alice", AMOUNT_TO_MINT)
        assert deposited.debt_of("alice") == 0


class TestBurnDebt:

    def test_burn_all(self, minted, token):
        receipt = minted.burn_debt("alice", AMOUNT_TO_MINT)

        assert minted.debt_of("alice") == 0
        assert token.balance_of("alice") == 0
        assert token.total_supply == 0
        assert token.balance_of(ENGINE_ACCOUNT) == 0
        assert receipt.events == (DebtBurned("alice", "alice", AMOUNT_TO_MINT, receipt.sequence),)

    def test_pull_then_burn(self, minted, token):
        token.calls.clear()
        minted.burn_debt("alice", to_units(40))
        assert token.calls == [("transfer_from", "alice", to_units(40)), ("burn", to_units(40))]
        assert minted.debt_of("alice") == to_units(60)

    def test_zero_burn_rejected(self, minted, token):
        before = minted.snapshot()
        token.calls.clear()
        with pytest.raises(InvalidArgument):
            minted.burn_debt("alice", 0)
        assert minted.snapshot() == before
        assert token.balance_of("alice") == AMOUNT_TO_MINT
        assert token.calls == []

    def test_burn_more_than_debt(self, minted):
        with pytest.raises(InsufficientDebt) as info:
            minted.burn_debt("alice", AMOUNT_TO_MINT + 1)
        assert info.value.outstanding == AMOUNT_TO_MINT

    def test_burn_without_holding_tokens(self, minted, token):
        token.move("alice", "bob", AMOUNT_TO_MINT)
        before = minted.snapshot()
        with pytest.raises(TransferFailed):
            minted.burn_debt("alice", AMOUNT_TO_MINT)
        assert minted.snapshot() == before
        assert token.balance_of("bob") == AMOUNT_TO_MINT

    def test_refused_burn_returns_tokens_to_payer(self, minted, token):
        token.refuse.add("burn")
        with pytest.raises(TransferFailed):
            minted.burn_debt("alice", AMOUNT_TO_MINT)
        assert minted.debt_of("alice") == AMOUNT_TO_MINT
        assert token.balance_of("alice") == AMOUNT_TO_MINT
        assert token.balance_of(ENGINE_ACCOUNT) == 0
        assert token.total_supply == AMOUNT_TO_MINT


class TestRedeemCollateralForDebt:

    def test_close_position(self, minted, custodian, token):
        receipt = minted.redeem_collateral_for_debt("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)

        assert minted.collateral_balance("alice", "WETH") == 0
        assert minted.debt_of("alice") == 0
        assert custodian.balance_of("alice", "WETH") == to_units(100)
        assert token.total_supply == 0
        assert receipt.operation is OperationType.REDEEM_FOR_DEBT
        assert [type(e) for e in receipt.events] == [DebtBurned, CollateralRedeemed]

    def test_partial_repayment_must_keep_health(self, minted):
        with pytest.raises(HealthFactorBroken):
            minted.redeem_collateral_for_debt("alice", "WETH", AMOUNT_COLLATERAL, to_units(50))
        assert minted.debt_of("alice") == AMOUNT_TO_MINT

    def test_zero_collateral_rejected(self, minted):
        with pytest.raises(InvalidArgument, match="collateral_amount"):
            minted.redeem_collateral_for_debt("alice", "WETH", 0, AMOUNT_TO_MINT)

    def test_refused_push_reissues_burned_tokens(self, minted, custodian, token):
        custodian.refuse.add("transfer_out")
        before = minted.snapshot()

        with pytest.raises(TransferFailed):
            minted.redeem_collateral_for_debt("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)

        assert minted.snapshot() == before
        assert token.balance_of("alice") == AMOUNT_TO_MINT
        assert token.total_supply == AMOUNT_TO_MINT
        assert token.balance_of(ENGINE_ACCOUNT) == 0
        assert custodian.custody_balance("WETH") == AMOUNT_COLLATERAL
