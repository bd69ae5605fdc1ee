import logging

from opentelemetry import trace

from .config import ServiceSettings


_NO_TRACE = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | trace_id=%(trace_id)s span_id=%(span_id)s | %(message)s"
)


class TraceContextFilter(logging.Filter):
    """Stamp each record with the active OpenTelemetry trace and span ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _NO_TRACE
        record.span_id = _NO_TRACE
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        return True


def _has_trace_filter(target: logging.Filterer) -> bool:
    return any(isinstance(f, TraceContextFilter) for f in target.filters)


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging level and attach the trace context filter once."""

    logging.basicConfig(level=settings.log_level, format=_LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    context_filter = TraceContextFilter()
    if not _has_trace_filter(root_logger):
        root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        if not _has_trace_filter(handler):
            handler.addFilter(context_filter)
