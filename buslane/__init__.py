"""
BusLane core: message paging, bulk mutation and client pooling for
Azure Service Bus browsing.
"""

__version__ = "1.0.0"
