from .asset_mode import AssetMetadata, AssetMode, AssetModeController, GenerationCounter
from .balance import BalanceService, BalanceSnapshot
from .approval import ApprovalOrchestrator, ApprovalState
from .engine import MultisenderEngine, PipelineState, PipelineStatus
from .errors import (
    ApprovalError,
    ErrorClassifier,
    InputError,
    InsufficientBalanceError,
    MultisenderError,
    NetworkError,
    OwnershipError,
    TransactionError,
    WalletError,
)
from .executor import DisperseTransactionExecutor, TransactionRecord, TxStatus, explorer_link
from .recipients import (
    POLICY_REJECT,
    POLICY_SKIP,
    Aggregate,
    DistributionRequest,
    ParseResult,
    RecipientEntry,
    build_request,
    calculate_aggregate,
    format_amount,
    parse_line,
    parse_recipients,
)
from .session import (
    NetworkMismatchError,
    SessionEvent,
    UserRejectedError,
    WalletNotConnectedError,
    WalletSession,
)
