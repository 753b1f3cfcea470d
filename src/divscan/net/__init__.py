"""
Networking package: request execution and adaptive throttling.
"""

from divscan.net.executor import RequestExecutor, RequestSpec, classify_response, classify_status
from divscan.net.throttle import ThrottleController

__all__ = [
    "RequestExecutor",
    "RequestSpec",
    "ThrottleController",
    "classify_response",
    "classify_status",
]
