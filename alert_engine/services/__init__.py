"""Business logic services package."""

from .alert_service import AlertService
from .digest_scheduler import DigestScheduler
from .evaluation_engine import EvaluationEngine, TickReport
from .notification_dispatcher import NotificationDispatcher
from .rule_evaluator import EvaluationOutcome, EvaluationResult, RuleEvaluator
from .trigger_lifecycle import TriggerLifecycleManager
from .user import UserService

__all__ = [
    "AlertService",
    "DigestScheduler",
    "EvaluationEngine",
    "EvaluationOutcome",
    "EvaluationResult",
    "NotificationDispatcher",
    "RuleEvaluator",
    "TickReport",
    "TriggerLifecycleManager",
    "UserService",
]
