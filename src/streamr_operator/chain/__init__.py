"""
Chain - on-chain interaction layer for the operator agent.

Provides the chain client boundary (with a JSON-RPC implementation),
contract descriptors and the transaction manager.

Uses httpx + eth-account + eth-abi instead of the heavyweight web3.py.
"""
