from prometheus_client import Counter, Histogram, start_http_server
from .config import settings
from .utils.logging import setup_logger

logger = setup_logger(__name__)

# Scoring metrics
checkins_scored_total = Counter(
    'checkins_scored_total',
    'Total number of check-ins run through the scoring engine',
    ['status']
)

scoring_duration = Histogram(
    'scoring_duration_seconds',
    'Scoring pass duration in seconds'
)

cheat_detections_total = Counter(
    'cheat_detections_total',
    'Total number of anti-cheat detections raised',
    ['type', 'action']
)

# HTTP metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

def start_metrics_server(port: int = None):
    """Start the Prometheus metrics server."""
    if port is None:
        port = settings.metrics_port
    try:
        start_http_server(port)
        logger.info(f"Started Prometheus metrics server on port {port}")
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        raise
