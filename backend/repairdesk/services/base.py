# backend/repairdesk/services/base.py
"""
Base Service Pattern for the repairdesk platform.

Provides common functionality for all service classes including:
- Transaction management
- Logging
- Performance monitoring
- Best-effort saga steps and event emission
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import RoleName
from ..core.exceptions import ForbiddenException, ServiceException
from ..core.request_context import get_request_id, reset_request_id, set_request_id
from ..core.ulid_helper import generate_ulid
from ..events import BookingEvent, BookingEventPublisher, NullPublisher
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
R = TypeVar("R")


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __init__(
        self,
        db: Session,
        config: Optional[Settings] = None,
        publisher: Optional[BookingEventPublisher] = None,
    ):
        """
        Initialize base service.

        Args:
            db: Database session
            config: Settings override, defaults to the process settings
            publisher: Event sink for booking events
        """
        self.db = db
        self.settings = config or default_settings
        self.publisher: BookingEventPublisher = publisher or NullPublisher()
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                booking = self.booking_repository.transition(...)
                # Note: commit is handled automatically
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception as e:
            self.logger.error(f"Unexpected error in transaction: {str(e)}")
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("complete_booking")
            def complete_booking(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            func._operation_name = operation_name  # type: ignore[attr-defined]
            func._is_measured = True  # type: ignore[attr-defined]

            @wraps(func)
            def wrapper(self, *args, **kwargs):
                # Outermost operation opens a correlation id for its log lines.
                token = set_request_id(generate_ulid()) if get_request_id() is None else None
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    if hasattr(self, "_record_metric"):
                        self._record_metric(operation_name, elapsed, success)

                    # Only log if it's actually slow
                    if elapsed > 1.0 and hasattr(self, "logger"):
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )
                    if token is not None:
                        reset_request_id(token)

            return cast(F, wrapper)

        return decorator

    def run_best_effort(
        self,
        saga: str,
        step: str,
        func: Callable[[], R],
        **context: Any,
    ) -> Tuple[Optional[R], Optional[Exception]]:
        """
        Run one post-commit saga step.

        Any failure is rolled back, logged, counted and returned instead of
        raised; the caller reports it as a null field in its result.
        """
        try:
            return func(), None
        except Exception as exc:
            self.db.rollback()
            prometheus_metrics.record_saga_step_failure(saga, step)
            self.logger.error(
                f"{saga} step '{step}' failed: {exc}",
                extra={"saga": saga, "step": step, **context},
                exc_info=True,
            )
            return None, exc

    def emit(self, event: BookingEvent) -> None:
        """Publish a committed transition; publish failures are not retried."""
        try:
            self.publisher.publish(event)
        except Exception:
            self.logger.exception(
                "Failed to publish booking event",
                extra={"event_type": event.event_type.value, "booking_id": event.booking_id},
            )

    @staticmethod
    def require_role(user: Any, *roles: RoleName, message: Optional[str] = None) -> None:
        allowed = {role.value for role in roles}
        if getattr(user, "role", None) not in allowed:
            raise ForbiddenException(
                message or "You do not have permission to perform this action",
                details={"required_roles": sorted(allowed)},
            )

    def log_operation(self, operation: str, **context):
        """Log an operation with context."""
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})
        metric_data = metrics.setdefault(
            operation,
            {
                "count": 0,
                "total_time": 0.0,
                "success_count": 0,
                "failure_count": 0,
                "min_time": float("inf"),
                "max_time": 0.0,
            },
        )
        metric_data["count"] += 1
        metric_data["total_time"] += elapsed
        metric_data["min_time"] = min(metric_data["min_time"], elapsed)
        metric_data["max_time"] = max(metric_data["max_time"], elapsed)
        if success:
            metric_data["success_count"] += 1
        else:
            metric_data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get performance metrics for this service.

        Returns:
            Dictionary with metrics for each measured operation
        """
        result = {}
        for operation, data in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = data["count"]
            if count == 0:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "min_time": data["min_time"],
                "max_time": data["max_time"],
                "success_rate": data["success_count"] / count,
                "failure_count": data["failure_count"],
            }
        return result

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
