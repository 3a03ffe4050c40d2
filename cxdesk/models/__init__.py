from cxdesk.models.domain import (
    Activity,
    BreakableType,
    Breakdown,
    BreakdownDirection,
    BreakdownStatus,
    Currency,
    CurrencySwap,
    CurrencyType,
    CxSession,
    Denomination,
    FloatStack,
    FloatTransfer,
    Order,
    OrderStatus,
    Organization,
    Repository,
    RepositoryAccessLog,
    SessionAccessLog,
    SessionStatus,
    User,
)

__all__ = [
    "Activity",
    "BreakableType",
    "Breakdown",
    "BreakdownDirection",
    "BreakdownStatus",
    "Currency",
    "CurrencySwap",
    "CurrencyType",
    "CxSession",
    "Denomination",
    "FloatStack",
    "FloatTransfer",
    "Order",
    "OrderStatus",
    "Organization",
    "Repository",
    "RepositoryAccessLog",
    "SessionAccessLog",
    "SessionStatus",
    "User",
]
