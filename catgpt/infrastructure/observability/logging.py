import structlog
import logging
import sys
from collections import Counter
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "catgpt"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add relay context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # user_id and chat_id are bound per message by the orchestrator
    context = structlog.contextvars.get_contextvars()
    for key in ("service", "environment", "version", "user_id", "chat_id"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


class RelayLogger:
    """Specialized logger for relay operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_relay_transition(
        self,
        user_id: Any,
        from_state: str,
        to_state: str,
        reason: Optional[str] = None
    ):
        """Log relay state machine transitions"""

        self.logger.info(
            "relay_transition",
            user_id=user_id,
            from_state=from_state,
            to_state=to_state,
            reason=reason
        )

    def log_inference_call(
        self,
        user_id: Any,
        model: str,
        turns: int,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log a completed or failed inference call"""

        self.logger.info(
            "inference_call",
            user_id=user_id,
            model=model,
            turns=turns,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_context_update(
        self,
        user_id: Any,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context store updates"""

        self.logger.debug(
            "context_update",
            user_id=user_id,
            action=action,
            details=details or {}
        )


# Global logger instance
relay_logger = RelayLogger("catgpt")


class RelayMetrics:
    """Relay outcomes and inference latency, kept in process memory"""

    def __init__(self):
        self.delivered = 0
        self.failures: Counter = Counter()
        self.latency_count = 0
        self.latency_total_ms = 0.0
        self.latency_min_ms: Optional[float] = None
        self.latency_max_ms: Optional[float] = None

    def record_inference_latency(self, duration_ms: float, model: str):
        self.latency_count += 1
        self.latency_total_ms += duration_ms
        if self.latency_min_ms is None or duration_ms < self.latency_min_ms:
            self.latency_min_ms = duration_ms
        if self.latency_max_ms is None or duration_ms > self.latency_max_ms:
            self.latency_max_ms = duration_ms

        relay_logger.logger.debug("metric", metric="inference_latency", model=model, duration_ms=duration_ms)

    def record_delivered(self):
        self.delivered += 1

    def record_failure(self, kind: str):
        """Count a failed relay by its error kind (timeout, delivery, ...)"""

        self.failures[kind] += 1
        relay_logger.logger.debug("metric", metric="relay_failure", kind=kind, total=self.failures[kind])

    def summary(self) -> Dict[str, Any]:
        """Shape served by /health"""

        return {
            "relays": {
                "delivered": self.delivered,
                "failed": dict(self.failures),
                "failed_total": sum(self.failures.values()),
            },
            "inference_latency_ms": {
                "count": self.latency_count,
                "avg": self.latency_total_ms / self.latency_count if self.latency_count else 0,
                "min": self.latency_min_ms or 0,
                "max": self.latency_max_ms or 0,
            },
        }

    def reset(self):
        self.__init__()


# Global relay metrics
metrics = RelayMetrics()
