from typing import Dict, Any, Callable, NamedTuple
import logging

logger = logging.getLogger(__name__)

ActionHandler = Callable[..., Dict[str, Any]]


class SimulatedAction(NamedTuple):
    handler: ActionHandler
    base_duration_ms: int


class ActionRegistry:
    """Registry of simulated action handlers, keyed by action type"""

    FALLBACK = "noop"

    def __init__(self):
        """Initialize the registry with the built-in action types."""
        self.actions: Dict[str, SimulatedAction] = {}
        self._register_default_actions()

    def register(self, name: str, func: ActionHandler, base_duration_ms: int = 100) -> None:
        """Register a handler; it receives the node config and run context and returns outputs."""
        self.actions[name] = SimulatedAction(func, base_duration_ms)

    def get(self, name: str) -> SimulatedAction:
        """Look up an action, falling back to the no-op handler for unknown types."""
        if name not in self.actions:
            logger.warning(f"Action type '{name}' not registered, simulating as {self.FALLBACK}")
            return self.actions[self.FALLBACK]
        return self.actions[name]

    def list_actions(self) -> list:
        return list(self.actions.keys())

    def _register_default_actions(self):
        self.register(self.FALLBACK, noop, 20)
        self.register("http_request", http_request, 250)
        self.register("email", send_email, 400)
        self.register("slack", slack_message, 150)
        self.register("database", database_query, 300)
        self.register("transform", transform_data, 80)


# Default simulated handlers. None of them touch the network; they only
# describe what the real action would have produced.

def noop(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    return {}


def http_request(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    """Pretend to call ``config['url']``; a ``mockStatus`` key overrides the 200."""
    return {
        "http_status": _as_int(config.get("mockStatus"), 200),
        "http_method": config.get("method", "POST"),
        "http_url": config.get("url", ""),
    }


def send_email(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    recipients = config.get("to", [])
    if isinstance(recipients, str):
        recipients = [r.strip() for r in recipients.split(",") if r.strip()]
    elif not isinstance(recipients, list):
        recipients = []
    return {"email_sent": True, "email_recipients": len(recipients)}


def slack_message(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    return {"slack_posted": True, "slack_channel": config.get("channel", "#general")}


def database_query(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    return {"rows_affected": _as_int(config.get("mockRows"), 1), "table": config.get("table", "")}


def transform_data(config: Dict[str, Any], context: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    """Copy ``config['set']`` into the run context, e.g. ``{"set": {"approved": true}}``."""
    value = config.get("set")
    return dict(value) if isinstance(value, dict) else {}


def _as_int(value: Any, default: int) -> int:
    """Mock values come from free-form node config; unusable ones fall back to the default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Ignoring mock value {value!r}, using {default}")
        return default
