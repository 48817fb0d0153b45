"""
Domain models — Pydantic types for the gateway.

All models are re-exported here for convenient access:

    from npmplus.core.models import ManagerIdentity, OperationRequest, OperationResult
"""

from npmplus.core.models.operation import (
    DetectionResult,
    ExecutionOutcome,
    LogicalOperation,
    ManagerIdentity,
    OperationFlags,
    OperationRequest,
    OperationResult,
)
from npmplus.core.models.package import (
    Author,
    BundleSize,
    DownloadStats,
    LicenseEntry,
    LicenseReport,
    PackageInfo,
    PackageSearchResult,
    SearchScore,
    SecurityInfo,
    Vulnerability,
)

__all__ = [
    # package.py
    "Author",
    "BundleSize",
    # operation.py
    "DetectionResult",
    "DownloadStats",
    "ExecutionOutcome",
    "LicenseEntry",
    "LicenseReport",
    "LogicalOperation",
    "ManagerIdentity",
    "OperationFlags",
    "OperationRequest",
    "OperationResult",
    "PackageInfo",
    "PackageSearchResult",
    "SearchScore",
    "SecurityInfo",
    "Vulnerability",
]
