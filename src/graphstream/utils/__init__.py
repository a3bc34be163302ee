from .logging import get_logger, configure_logging, PartitionLogContext, get_partition_key

__all__ = ["get_logger", "configure_logging", "PartitionLogContext", "get_partition_key"]
