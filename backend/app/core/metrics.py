"""
Prometheus metrics configuration
"""
import os

from prometheus_client import (CONTENT_TYPE_LATEST, Counter, Gauge, Histogram,
                               Info, generate_latest)
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY

if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    REGISTRY = MultiProcessCollector(REGISTRY)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

api_rate_limited_total = Counter(
    'api_rate_limited_total',
    'Public API requests rejected by the rate limiter',
    ['endpoint']
)

# ============================================================================
# Compound Prompt Metrics
# ============================================================================

compound_resolutions_total = Counter(
    'compound_resolutions_total',
    'Compound prompt resolutions',
    ['outcome']  # ok, not_found, max_depth_exceeded, circular_reference
)

compound_resolution_duration_seconds = Histogram(
    'compound_resolution_duration_seconds',
    'Compound prompt resolution duration in seconds',
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)

compound_bulk_resolution_size = Histogram(
    'compound_bulk_resolution_size',
    'Number of prompts resolved per bulk resolution call',
    buckets=(1, 5, 10, 20, 50, 100)
)

# ============================================================================
# Moderation and Import Metrics
# ============================================================================

prompt_moderation_actions_total = Counter(
    'prompt_moderation_actions_total',
    'Moderation actions applied to prompts',
    ['action']  # approve, reject, delete, restore
)

prompt_imports_total = Counter(
    'prompt_imports_total',
    'Prompts processed by bulk and backup imports',
    ['source', 'outcome']  # source: bulk, backup; outcome: created, updated, skipped, failed
)

# ============================================================================
# Database Metrics
# ============================================================================

db_queries_total = Counter(
    'db_queries_total',
    'Total number of database queries',
    ['operation', 'table']
)

db_query_duration_seconds = Histogram(
    'db_query_duration_seconds',
    'Database query duration in seconds',
    ['operation', 'table'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)

db_connection_pool_size = Gauge(
    'db_connection_pool_size',
    'Database connection pool size',
    ['state']  # active, idle
)

# ============================================================================
# System Info
# ============================================================================

app_info = Info(
    'app_info',
    'Application information'
)


def get_metrics():
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type():
    return CONTENT_TYPE_LATEST
