"""
Error classes raised while building an NFT activity history
"""

class ActivityHistoryError(Exception):
    """Base class for activity history failures"""
    pass

class InvalidAddressError(ActivityHistoryError):
    """Address is malformed or does not resolve to NFT metadata"""
    pass

class UpstreamUnavailableError(ActivityHistoryError):
    """An RPC or HTTP call failed after the client's own retries"""
    pass
