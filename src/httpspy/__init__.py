"""
HTTP Spy

HTTP test double: a local HTTP listener serving declared responses and
verifying the requests it received.
"""

__version__ = '1.0.0'

from .common import (
    HttpSpyError,
    ConfigurationError,
    PlanNotSetError,
    PlanAlreadySetError,
    ThreadingConfigurationError,
    PlanDocumentError,
    SpyStateError,
    StructuralComparisonError,
    DelayInterruptedError,
    VerificationError,
)
from .spy import *  # noqa: F401,F403
from .spy import __all__ as _spy_all

__all__ = [
    'HttpSpyError',
    'ConfigurationError',
    'PlanNotSetError',
    'PlanAlreadySetError',
    'ThreadingConfigurationError',
    'PlanDocumentError',
    'SpyStateError',
    'StructuralComparisonError',
    'DelayInterruptedError',
    'VerificationError',
] + list(_spy_all)
