"""
Drivers domain package.

Public API:
- Domain models: DriverLocation, DriverProfile, DriverStats, DriverCandidate, ServiceType
- Configuration: DriverPolicy, default_driver_policy

The Candidate Locator lives in drivers.selection and is imported from there.
"""
from .models import DriverCandidate, DriverLocation, DriverProfile, DriverStats, ServiceType, VerificationStatus
from .policy import DriverPolicy, default_driver_policy

__all__ = [
    "DriverCandidate",
    "DriverLocation",
    "DriverProfile",
    "DriverStats",
    "ServiceType",
    "VerificationStatus",
    "DriverPolicy",
    "default_driver_policy",
]
