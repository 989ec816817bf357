"""
Utilities package
Logging, text helpers, pagination and rate-limit retry
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
)
from .helpers import (
    calculate_similarity,
    normalize_artist_name,
    normalize_track_title,
    parse_duration_string,
    format_rate,
    split_pipe_list,
)
from .retry import BackoffPolicy, RateLimitRetry

__all__ = [
    'get_logger', 'configure_from_settings', 'setup_logging', 'OperationLogger', 'create_operation_logger',
    'calculate_similarity', 'normalize_artist_name', 'normalize_track_title', 'parse_duration_string',
    'format_rate', 'split_pipe_list', 'BackoffPolicy', 'RateLimitRetry',
]
