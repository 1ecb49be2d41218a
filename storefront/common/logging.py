import logging

from .config import ServiceSettings
from .tracing import current_trace_ids

_NO_TRACE = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(service)s "
    "| trace_id=%(trace_id)s span_id=%(span_id)s | %(message)s"
)


class ServiceContextFilter(logging.Filter):
    """Stamp records with the service name and the active trace/span identifiers."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self.service_name
        record.trace_id, record.span_id = current_trace_ids() or (_NO_TRACE, _NO_TRACE)
        return True


def _context_filter(root: logging.Logger, service_name: str) -> ServiceContextFilter:
    for existing in root.filters:
        if isinstance(existing, ServiceContextFilter):
            return existing
    context_filter = ServiceContextFilter(service_name)
    root.addFilter(context_filter)
    return context_filter


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging for a service process.

    Safe to call once per app: the checkout and notification apps may share a
    process, and the first app's service name stays on the shared filter.
    """

    logging.basicConfig(level=settings.log_level, format=_LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(settings.log_level)

    context_filter = _context_filter(root, settings.app_name)
    for handler in root.handlers:
        if context_filter not in handler.filters:
            handler.addFilter(context_filter)
