"""
HTTP Spy Common Utilities

Shared utilities, helpers and the error hierarchy used across HTTP Spy modules.
"""

from .errors import (
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
from .utils import (
    safe_json_parse,
    freeze_headers,
    headers_from_pairs,
    join_header_values,
    normalize_path,
    decode_body,
    charset_from_content_type,
    truncate,
)

__all__ = [
    # Errors
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

    # Utilities
    'safe_json_parse',
    'freeze_headers',
    'headers_from_pairs',
    'join_header_values',
    'normalize_path',
    'decode_body',
    'charset_from_content_type',
    'truncate',
]
