from .chain import MAX_UINT256, ChainRpcClient, RpcMethodError
from .mempool import MempoolConnectionError, MempoolEvent, MempoolStreamClient, MempoolSubscription
from .quotes import PriceInformation, QuoteParams, QuoteRateLimitError, QuoteServiceClient, QuoteServiceError
from .signing import OrderSigner

__all__ = [
    "MAX_UINT256",
    "ChainRpcClient",
    "MempoolConnectionError",
    "MempoolEvent",
    "MempoolStreamClient",
    "MempoolSubscription",
    "OrderSigner",
    "PriceInformation",
    "QuoteParams",
    "QuoteRateLimitError",
    "QuoteServiceClient",
    "QuoteServiceError",
    "RpcMethodError",
]
