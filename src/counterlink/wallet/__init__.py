"""
Wallet - transports, key management and the connection manager.
"""
