__all__ = [
    # Chain
    "ChainClient",
    "HttpChainClient",
    "SignedTx",
    "TxLookup",
    "ContractDescriptor",
    "MethodSpec",
    "fetch_contract_abi",
    "load_abi_file",
    "load_descriptor",
    "TxManager",
    "PendingTransaction",
    "ConfirmedTransaction",
    # Staking
    "Operator",
    "AllocationResult",
    "pro_rata_plan",
    "compound_plan",
    "DeployedStake",
    "OperatorDetails",
    "SponsorshipsAndEarnings",
    "UndelegationEntry",
    # Errors
    "OperatorError",
    "AllocationError",
    "BroadcastError",
    "ConfirmationTimeoutError",
    "DecodingError",
    "DescriptorError",
    "EncodingError",
    "GasEstimationError",
    "RemoteError",
    "SigningError",
    # Config / identity
    "Settings",
    "get_address",
    "load_private_key",
]

from .chain.abi import (
    ContractDescriptor,
    MethodSpec,
    fetch_contract_abi,
    load_abi_file,
    load_descriptor,
)
from .chain.rpc import ChainClient, HttpChainClient, SignedTx, TxLookup
from .chain.tx import ConfirmedTransaction, PendingTransaction, TxManager
from .config import Settings
from .errors import (
    AllocationError,
    BroadcastError,
    ConfirmationTimeoutError,
    DecodingError,
    DescriptorError,
    EncodingError,
    GasEstimationError,
    OperatorError,
    RemoteError,
    SigningError,
)
from .keys import get_address, load_private_key
from .staking.operator import AllocationResult, Operator
from .staking.plan import compound_plan, pro_rata_plan
from .staking.results import (
    DeployedStake,
    OperatorDetails,
    SponsorshipsAndEarnings,
    UndelegationEntry,
)
