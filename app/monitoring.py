"""
Request metrics, threshold health checks and alerting.

Health is evaluated from independent checks (system resources, API
performance, cache effectiveness). Each check reports ``healthy``,
``degraded`` or ``critical``; alerts are logged and kept in a bounded
history.
"""
import logging
import threading
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

import psutil
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config.settings import Settings

logger = logging.getLogger("monitoring")

HEALTHY = "healthy"
WARNING = "warning"
DEGRADED = "degraded"
CRITICAL = "critical"

# Cache checks need this many lookups before the hit rate means anything
MIN_CACHE_LOOKUPS = 100


def evaluate_overall_health(checks: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Combine individual checks into one status.

    Any critical check makes the system critical; two or more degraded
    checks make it degraded; a single degraded check is a warning.
    """
    result: Dict[str, Any] = {"status": HEALTHY, "warnings": [], "errors": []}
    degraded = 0
    critical = 0

    for check in checks.values():
        status = check.get("status", HEALTHY)
        if status == DEGRADED:
            degraded += 1
            result["warnings"].extend(check.get("warnings", []))
        elif status == CRITICAL:
            critical += 1
            result["errors"].extend(check.get("errors", []))

    if critical > 0:
        result["status"] = CRITICAL
    elif degraded > 1:
        result["status"] = DEGRADED
    elif degraded == 1:
        result["status"] = WARNING
    return result


class MonitoringService:
    """
    In-process metrics sink with threshold alerting.

    Usage:
        monitoring = MonitoringService(settings)
        monitoring.record_request(42.0)
        status = monitoring.perform_health_check(cache_manager)
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.error_rate_threshold = settings.alert_error_rate_percent
        self.response_time_threshold = settings.alert_response_time_ms
        self.memory_threshold = settings.alert_memory_percent
        self.slow_request_ms = settings.slow_request_ms
        self.cache_hit_rate_warning = settings.cache_hit_rate_warning_percent
        self.health_check_interval = settings.health_check_interval_seconds

        self._clock = clock
        self._lock = threading.Lock()
        self._started_at = clock()
        self._start_time = datetime.utcnow()

        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self._response_times: Deque[float] = deque(maxlen=settings.response_sample_size)
        self._alerts: Deque[Dict[str, Any]] = deque(maxlen=settings.alert_history_size)

        self._last_health: Optional[Dict[str, Any]] = None
        self._last_health_at: Optional[float] = None

    # -- request metrics -------------------------------------------------

    def record_request(self, response_time_ms: float, failed: bool = False) -> None:
        """Count a request and keep its response time in the sample window."""
        with self._lock:
            self.total_requests += 1
            if failed:
                self.failed_requests += 1
            else:
                self.successful_requests += 1
            self._response_times.append(response_time_ms)

    @property
    def avg_response_time(self) -> float:
        with self._lock:
            if not self._response_times:
                return 0.0
            return sum(self._response_times) / len(self._response_times)

    @property
    def error_rate(self) -> float:
        with self._lock:
            if self.total_requests == 0:
                return 0.0
            return self.failed_requests / self.total_requests * 100

    @property
    def alerts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._alerts)

    # -- checks ----------------------------------------------------------

    def check_system_resources(self) -> Dict[str, Any]:
        check: Dict[str, Any] = {"status": HEALTHY, "memory": {}, "cpu": {}, "warnings": []}
        try:
            process = psutil.Process()
            memory = psutil.virtual_memory()
            check["memory"] = {
                "rss": process.memory_info().rss,
                "total": memory.total,
                "percentage": memory.percent,
            }
            cpu_times = process.cpu_times()
            check["cpu"] = {"user": cpu_times.user, "system": cpu_times.system}

            if memory.percent > self.memory_threshold:
                check["status"] = DEGRADED
                check["warnings"].append(f"High memory usage: {memory.percent:.1f}%")
        except psutil.Error as e:
            check["status"] = DEGRADED
            check["warnings"].append(f"Resource check error: {e}")
        return check

    def check_api_performance(self) -> Dict[str, Any]:
        error_rate = self.error_rate
        avg_response_time = self.avg_response_time
        check: Dict[str, Any] = {
            "status": HEALTHY,
            "requests": self.total_requests,
            "error_rate": round(error_rate, 2),
            "avg_response_time": round(avg_response_time, 2),
            "warnings": [],
        }
        if error_rate > self.error_rate_threshold:
            check["status"] = DEGRADED
            check["warnings"].append(f"High error rate: {error_rate:.2f}%")
        if avg_response_time > self.response_time_threshold:
            check["status"] = DEGRADED
            check["warnings"].append(f"Slow response time: {avg_response_time:.0f}ms")
        return check

    def check_cache(self, cache_manager) -> Dict[str, Any]:
        check: Dict[str, Any] = {"status": HEALTHY, "warnings": [], "errors": []}
        try:
            stats = cache_manager.get_stats()
        except Exception as e:
            logger.error(f"Cache check failed: {e}", exc_info=True)
            check["status"] = CRITICAL
            check["errors"].append(f"Cache unavailable: {e}")
            return check

        check["hit_rate"] = stats["hit_rate"]
        check["total_requests"] = stats["total_requests"]
        if (
            stats["total_requests"] >= MIN_CACHE_LOOKUPS
            and stats["hit_rate"] < self.cache_hit_rate_warning
        ):
            check["status"] = DEGRADED
            check["warnings"].append(f"Low cache hit rate: {stats['hit_rate']}%")
        return check

    # -- health ----------------------------------------------------------

    def perform_health_check(self, cache_manager=None) -> Dict[str, Any]:
        """Run every check, raise alerts, and remember the result."""
        health: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "status": HEALTHY,
            "checks": {},
            "warnings": [],
            "errors": [],
        }
        checks = {
            "system": self.check_system_resources(),
            "api": self.check_api_performance(),
        }
        if cache_manager is not None:
            checks["cache"] = self.check_cache(cache_manager)
        health["checks"] = checks
        health.update(evaluate_overall_health(checks))

        self.process_alerts(health)

        with self._lock:
            self._last_health = health
            self._last_health_at = self._clock()

        logger.debug(
            f"Health check completed: {health['status']} "
            f"({len(health['warnings'])} warnings, {len(health['errors'])} errors)"
        )
        return health

    def get_health_status(self, cache_manager=None) -> Dict[str, Any]:
        """Recent health result, or a fresh check if the last one is stale."""
        with self._lock:
            last, last_at = self._last_health, self._last_health_at
        if last is not None and self._clock() - last_at < self.health_check_interval * 2:
            return last
        return self.perform_health_check(cache_manager)

    def process_alerts(self, health: Dict[str, Any]) -> List[Dict[str, Any]]:
        alerts = []
        now = datetime.utcnow().isoformat() + "Z"
        if health["status"] == CRITICAL:
            alerts.append({
                "level": CRITICAL,
                "message": "System critical health detected",
                "details": health["errors"],
                "timestamp": now,
            })
        elif health["status"] == DEGRADED:
            alerts.append({
                "level": "warning",
                "message": "System performance degraded",
                "details": health["warnings"],
                "timestamp": now,
            })

        for alert in alerts:
            self.send_alert(alert)
        return alerts

    def send_alert(self, alert: Dict[str, Any]) -> None:
        logger.error(f"ALERT [{alert['level'].upper()}]: {alert['message']} {alert['details']}")
        with self._lock:
            self._alerts.append(alert)

    def get_system_metrics(self) -> Dict[str, Any]:
        return {
            "requests": {
                "total": self.total_requests,
                "successful": self.successful_requests,
                "failed": self.failed_requests,
                "avg_response_time": round(self.avg_response_time, 2),
                "error_rate": round(self.error_rate, 2),
            },
            "alerts": self.alerts,
            "uptime": round(self._clock() - self._started_at, 1),
            "start_time": self._start_time.isoformat() + "Z",
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Times every request and feeds the app's MonitoringService."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        request_id = uuid.uuid4().hex[:16]
        monitoring: MonitoringService = request.app.state.monitoring

        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - start) * 1000
            monitoring.record_request(elapsed_ms, failed=True)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        monitoring.record_request(elapsed_ms, failed=response.status_code >= 500)

        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        response.headers["X-Request-ID"] = request_id
        if elapsed_ms > monitoring.slow_request_ms:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path} - {elapsed_ms:.0f}ms"
            )
        return response
