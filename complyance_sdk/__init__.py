"""
Complyance SDK for the GETS Unify compliance API.

Submits tax and invoicing documents, retrying transient failures and
persisting undeliverable submissions to a local queue for redelivery.
"""

from .client import APIClient
from .config import SDKConfig, load_config
from .errors import (
    APIError,
    ConfigurationError,
    ErrorCode,
    ErrorDetail,
    QueuePersistenceError,
    SDKError,
    ValidationError,
)
from .models import (
    Country,
    Destination,
    DocumentType,
    Environment,
    LogicalDocType,
    Mode,
    Operation,
    Purpose,
    Source,
    SourceType,
    SubmissionStatus,
    UnifyRequest,
)
from .sdk import ComplyanceSDK

__all__ = [
    "APIClient",
    "ComplyanceSDK",
    "SDKConfig",
    "load_config",
    "APIError",
    "ConfigurationError",
    "ErrorCode",
    "ErrorDetail",
    "QueuePersistenceError",
    "SDKError",
    "ValidationError",
    "Country",
    "Destination",
    "DocumentType",
    "Environment",
    "LogicalDocType",
    "Mode",
    "Operation",
    "Purpose",
    "Source",
    "SourceType",
    "SubmissionStatus",
    "UnifyRequest",
]
