"""
Chain - On-chain interaction layer.

Provides the target network description, a JSON-RPC client, the counter
contract ABI codec and the ProviderClient built on top of them.

Uses httpx + eth-abi instead of the heavyweight web3.py.
"""
