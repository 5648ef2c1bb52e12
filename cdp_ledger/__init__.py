"""
cdp_ledger - Over-collateralized debt engine

Accounts deposit approved collateral assets, mint a USD-pegged debt token
against them, and must keep a health factor of at least 1.0. Accounts below
1.0 can be partially liquidated by anyone for a collateral bonus.

Usage:
    from cdp_ledger import (
        CollateralEngine, StaticPriceSource, InMemoryCustodian,
        InMemoryDebtToken, to_units,
    )

    custodian = InMemoryCustodian()
    token = InMemoryDebtToken()
    engine = CollateralEngine(
        asset_ids=["WETH", "WBTC"],
        price_feeds=["ETH/USD", "BTC/USD"],
        price_source=StaticPriceSource({"ETH/USD": 2000_00000000, "BTC/USD": 1000_00000000}),
        custodian=custodian,
        debt_issuer=token,
    )

    custodian.fund("alice", "WETH", to_units(10))
    engine.deposit_collateral_and_mint("alice", "WETH", to_units(10), to_units(5000))
    engine.health_factor("alice")   # 2e18
"""

# Core types
from .core import (
    EngineView,
    AssetCustodian,
    DebtIssuer,
    AccountInfo,
    Receipt,
    OperationType,
    EngineError,
    InvalidArgument,
    UnsupportedAsset,
    InsufficientCollateral,
    InsufficientDebt,
    TransferFailed,
    MintFailed,
    HealthFactorBroken,
    HealthIsOkay,
    HealthFactorNotImproved,
    OracleUnavailable,
    ReentrancyDetected,
    ConfigLengthMismatch,
    PRECISION,
    ORACLE_PRECISION_ADJUSTMENT,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ENGINE_ACCOUNT,
    require_amount,
    to_units,
    from_units,
    format_usd,
    health_factor_repr,
)

# Configuration
from .config import EngineConfig, SupportedAsset, build_supported_assets

# Pricing
from .pricing_source import PriceReading, PriceSource, StaticPriceSource, TimeSeriesPriceSource
from .oracle import OracleAdapter

# Health factor (pure)
from .health import (
    AccountHealth,
    account_health,
    compute_health_factor,
    is_healthy,
    max_mintable,
    risk_adjusted_collateral,
    total_collateral_value_usd,
)

# Guards
from .guards import ReentrancyLock, enforce_health_factor

# Liquidation
from .liquidation import LiquidationPlan, calculate_seizure, compute_liquidation, verify_improvement

# Events
from .events import (
    CollateralDeposited,
    CollateralRedeemed,
    DebtMinted,
    DebtBurned,
    Liquidated,
    EngineEvent,
    replay_events,
)

# Engine
from .engine import CollateralEngine, EngineSnapshot

# Reference collaborators
from .custody import InMemoryCustodian, InMemoryDebtToken

__all__ = [
    # Core
    'EngineView', 'AssetCustodian', 'DebtIssuer', 'AccountInfo', 'Receipt', 'OperationType',
    'EngineError', 'InvalidArgument', 'UnsupportedAsset', 'InsufficientCollateral',
    'InsufficientDebt', 'TransferFailed', 'MintFailed', 'HealthFactorBroken',
    'HealthIsOkay', 'HealthFactorNotImproved', 'OracleUnavailable',
    'ReentrancyDetected', 'ConfigLengthMismatch',
    'PRECISION', 'ORACLE_PRECISION_ADJUSTMENT', 'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_BONUS', 'LIQUIDATION_PRECISION', 'MIN_HEALTH_FACTOR',
    'MAX_HEALTH_FACTOR', 'ENGINE_ACCOUNT',
    'require_amount', 'to_units', 'from_units', 'format_usd', 'health_factor_repr',
    # Configuration
    'EngineConfig', 'SupportedAsset', 'build_supported_assets',
    # Pricing
    'PriceReading', 'PriceSource', 'StaticPriceSource', 'TimeSeriesPriceSource',
    'OracleAdapter',
    # Health
    'AccountHealth', 'account_health', 'compute_health_factor', 'is_healthy',
    'max_mintable', 'risk_adjusted_collateral', 'total_collateral_value_usd',
    # Guards
    'ReentrancyLock', 'enforce_health_factor',
    # Liquidation
    'LiquidationPlan', 'calculate_seizure', 'compute_liquidation', 'verify_improvement',
    # Events
    'CollateralDeposited', 'CollateralRedeemed', 'DebtMinted', 'DebtBurned',
    'Liquidated', 'EngineEvent', 'replay_events',
    # Engine
    'CollateralEngine', 'EngineSnapshot',
    # Collaborators
    'InMemoryCustodian', 'InMemoryDebtToken',
]

__version__ = '1.0.0'
