from buslane.services.bulk_operations import BulkOperationService

__all__ = ["BulkOperationService"]
