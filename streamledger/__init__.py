"""
streamledger - Continuous Time-Weighted Token Distribution

A stream sells a fixed supply of an out asset continuously over a time
window. Participants deposit an in asset; as time passes their deposits are
spent pro rata and they accrue out asset in proportion to their shares.

Usage:
    from streamledger import (
        InMemoryCustody, AssetInfo, StreamFactory, default_params,
    )

    custody = InMemoryCustody("vault")
    custody.register_asset(AssetInfo("USDC", 6))
    custody.register_asset(AssetInfo("TOKEN", 18))
    custody.fund("creator", "TOKEN", 10_000)
    custody.fund("alice", "USDC", 5_000)

    factory = StreamFactory(default_params("treasury"), custody)
    stream = factory.create_stream(
        creator="creator", in_asset="USDC", out_asset="TOKEN",
        out_supply=10_000, bootstrapping_start=1_500, stream_start=7_500,
        stream_end=107_500, now=1_000,
    )
    stream.deposit("alice", 5_000, now=2_000)
    stream.sync(now=57_500)                # half of the out supply distributed
    stream.exit("alice", now=107_500)      # purchased TOKEN paid out
"""

# Core types
from .core import (
    DECIMAL_PRECISION,
    DECIMAL_SCALE,
    NORMALIZED_DECIMALS,
    MAX_UINT256,
    MAX_ASSET_DECIMALS,
    StreamStatus,
    EventType,
    ExitKind,
    StreamTimes,
    StreamEvent,
    StreamError,
    ValidationError,
    InvalidParameter,
    InvalidStreamTimes,
    DurationTooShort,
    OperationNotAllowed,
    InvalidAmount,
    InvalidPosition,
    WithdrawAmountExceedsBalance,
    TimeRegression,
    Unauthorized,
    StreamArithmeticError,
    ArithmeticUnderflow,
    DivisionByZero,
    DecimalOverflow,
    ConsistencyError,
    IndexRegression,
    ShareMismatch,
    CustodyError,
    InsufficientFunds,
    AssetNotRegistered,
)

# Fixed-point arithmetic
from .fixed_point import FixedPoint, ZERO, ONE

# Configuration
from .config import (
    ProtocolParams,
    StreamTerms,
    default_params,
    testnet_params,
    production_params,
)

# Phase clock
from .phase import next_status, status_at

# Distribution and positions
from .distribution import (
    DistributionState,
    initial_distribution,
    calculate_diff,
    normalize_amount,
    compute_streamed_price,
    sync_distribution,
)
from .position import Position, new_position, sync_position
from .shares import compute_shares

# Settlement
from .settlement import (
    ExitOutcome,
    FinalizeOutcome,
    calculate_exit_fee,
    settle_exit,
    threshold_reached,
    calculate_exit_outcome,
    calculate_finalize_outcome,
)

# Pure stream transitions
from .engine import (
    StreamState,
    create_stream,
    sync_stream,
    sync_position_at,
    deposit,
    withdraw,
    exit_stream,
    finalize_stream,
    cancel_stream,
)

# Custody
from .custody import (
    AssetCustody,
    AssetInfo,
    Transfer,
    InMemoryCustody,
    SYSTEM_ACCOUNT,
)

# Stateful shell
from .stream import Stream
from .factory import StreamFactory

# Analytics
from .analytics import (
    ACTION_DEPOSIT,
    ACTION_WITHDRAW,
    ACTION_SYNC,
    ScheduledAction,
    random_schedule,
    replay_schedule,
    position_table,
    effective_prices,
    purchase_shares,
)


__all__ = [
    # Constants
    'DECIMAL_PRECISION', 'DECIMAL_SCALE', 'NORMALIZED_DECIMALS', 'MAX_UINT256',
    'MAX_ASSET_DECIMALS',
    # Enums and records
    'StreamStatus', 'EventType', 'ExitKind', 'StreamTimes', 'StreamEvent',
    # Exceptions
    'StreamError', 'ValidationError', 'InvalidParameter', 'InvalidStreamTimes',
    'DurationTooShort', 'OperationNotAllowed', 'InvalidAmount', 'InvalidPosition',
    'WithdrawAmountExceedsBalance', 'TimeRegression', 'Unauthorized',
    'StreamArithmeticError', 'ArithmeticUnderflow', 'DivisionByZero', 'DecimalOverflow',
    'ConsistencyError', 'IndexRegression', 'ShareMismatch',
    'CustodyError', 'InsufficientFunds', 'AssetNotRegistered',
    # Fixed point
    'FixedPoint', 'ZERO', 'ONE',
    # Configuration
    'ProtocolParams', 'StreamTerms', 'default_params', 'testnet_params', 'production_params',
    # Phase
    'next_status', 'status_at',
    # Distribution
    'DistributionState', 'initial_distribution', 'calculate_diff', 'normalize_amount',
    'compute_streamed_price', 'sync_distribution',
    # Positions and shares
    'Position', 'new_position', 'sync_position', 'compute_shares',
    # Settlement
    'ExitOutcome', 'FinalizeOutcome', 'calculate_exit_fee', 'settle_exit',
    'threshold_reached', 'calculate_exit_outcome', 'calculate_finalize_outcome',
    # Transitions
    'StreamState', 'create_stream', 'sync_stream', 'sync_position_at',
    'deposit', 'withdraw', 'exit_stream', 'finalize_stream', 'cancel_stream',
    # Custody
    'AssetCustody', 'AssetInfo', 'Transfer', 'InMemoryCustody', 'SYSTEM_ACCOUNT',
    # Shell
    'Stream', 'StreamFactory',
    # Analytics
    'ACTION_DEPOSIT', 'ACTION_WITHDRAW', 'ACTION_SYNC',
    'ScheduledAction', 'random_schedule', 'replay_schedule',
    'position_table', 'effective_prices', 'purchase_shares',
]

__version__ = '1.0.0'
