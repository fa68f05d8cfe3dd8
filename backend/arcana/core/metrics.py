"""
Prometheus metrics configuration
"""
import os

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Histogram, Info, generate_latest)
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY

from arcana.core.config import get_settings

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'arcana_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'arcana_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

api_errors_total = Counter(
    'arcana_api_errors_total',
    'Error responses by error code',
    ['code']
)

# ============================================================================
# Workflow Metrics
# ============================================================================

predictions_submitted_total = Counter(
    'arcana_predictions_submitted_total',
    'Prediction jobs accepted for processing'
)

predictions_finished_total = Counter(
    'arcana_predictions_finished_total',
    'Prediction jobs that reached a terminal status',
    ['status', 'failure_code']
)

prediction_duration_seconds = Histogram(
    'arcana_prediction_duration_seconds',
    'Wall time from PROCESSING to a terminal status',
    ['status'],
    buckets=(1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0)
)

stage_attempts_total = Counter(
    'arcana_stage_attempts_total',
    'Attempts of retried operations (stages and checkpoints)',
    ['operation', 'outcome']  # outcome: 'success', 'error'
)

stage_duration_seconds = Histogram(
    'arcana_stage_duration_seconds',
    'Duration of a successful stage call',
    ['stage'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
)

narration_fallbacks_total = Counter(
    'arcana_narration_fallbacks_total',
    'Readings built from the deterministic fallback'
)

# ============================================================================
# LLM Metrics
# ============================================================================

llm_requests_total = Counter(
    'arcana_llm_requests_total',
    'Total number of LLM requests',
    ['model', 'status']
)

llm_request_duration_seconds = Histogram(
    'arcana_llm_request_duration_seconds',
    'LLM request duration in seconds',
    ['model'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)
)

# ============================================================================
# Credit / Rate Limit Metrics
# ============================================================================

credit_transactions_total = Counter(
    'arcana_credit_transactions_total',
    'Credit ledger transactions by type',
    ['type']  # DEBIT, TOPUP, REFUND
)

credit_debit_rejections_total = Counter(
    'arcana_credit_debit_rejections_total',
    'Debits refused for insufficient balance'
)

compensation_failures_total = Counter(
    'arcana_compensation_failures_total',
    'Refunds that could not be applied and need manual reconciliation'
)

rate_limit_rejections_total = Counter(
    'arcana_rate_limit_rejections_total',
    'Submissions rejected by the cooldown window'
)

log_messages_total = Counter(
    'arcana_log_messages_total',
    'Log records emitted by level',
    ['level']
)

# ============================================================================
# System Info
# ============================================================================

app_info = Info('arcana_app', 'Application information')

_settings = get_settings()
app_info.info({
    'app_name': _settings.app_name,
    'app_env': _settings.app_env,
    'version': '0.1.0',
})

# ============================================================================
# Helper Functions
# ============================================================================


def get_metrics() -> bytes:
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
        registry = CollectorRegistry()
        MultiProcessCollector(registry)
        return generate_latest(registry)
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST
