from buslane.core.interfaces.broker_operations import BrokerOperations

__all__ = ["BrokerOperations"]
