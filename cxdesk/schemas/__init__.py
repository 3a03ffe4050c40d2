from cxdesk.schemas.breakdowns import (
    BreakdownCommitRead,
    BreakdownCommitRequest,
    BreakdownEntryIn,
    BreakdownRead,
    BreakdownUncommitRequest,
    SwapCreate,
    SwapRead,
    TransferCreate,
    TransferRead,
)
from cxdesk.schemas.float import (
    CurrencyFloatRead,
    CurrencyPanelRead,
    FloatStackRead,
    FloatStackUpdate,
    OffBalanceRead,
    RepositoryAccessLogRead,
    RepositoryFloatRead,
    RepositoryFloatUpdate,
    RepositoryFloatValidationRead,
    SessionFloatRead,
    ValidateRepositoryFloatRequest,
)
from cxdesk.schemas.sessions import (
    CloseCheckRead,
    ConfirmFloatRequest,
    ProvisioningRead,
    SessionCreatedRead,
    SessionRead,
    StartFloatRequest,
)

__all__ = [
    "BreakdownCommitRead",
    "BreakdownCommitRequest",
    "BreakdownEntryIn",
    "BreakdownRead",
    "BreakdownUncommitRequest",
    "CloseCheckRead",
    "ConfirmFloatRequest",
    "CurrencyFloatRead",
    "CurrencyPanelRead",
    "FloatStackRead",
    "FloatStackUpdate",
    "OffBalanceRead",
    "ProvisioningRead",
    "RepositoryAccessLogRead",
    "RepositoryFloatRead",
    "RepositoryFloatUpdate",
    "RepositoryFloatValidationRead",
    "SessionCreatedRead",
    "SessionFloatRead",
    "SessionRead",
    "StartFloatRequest",
    "SwapCreate",
    "SwapRead",
    "TransferCreate",
    "TransferRead",
    "ValidateRepositoryFloatRequest",
]
