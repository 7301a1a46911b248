"""
Correlation-ID tracing for the coin service
"""
import uuid
import time
import json
from typing import Dict, Optional
from contextvars import ContextVar
from fastapi import Request
import logging

logger = logging.getLogger(__name__)

trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)

class TraceSpan:
    """One traced operation; logs a structured line when finished"""

    def __init__(self, name: str, trace_id: str = None):
        self.span_id = str(uuid.uuid4())[:8]
        self.trace_id = trace_id or str(uuid.uuid4())[:16]
        self.name = name
        self.start_time = time.time()
        self.tags = {}
        self.status = "ok"
        trace_id_var.set(self.trace_id)

    def add_tag(self, key: str, value):
        self.tags[key] = value
        return self

    def set_error(self, error: Exception):
        self.status = "error"
        self.add_tag("error.type", type(error).__name__)
        self.add_tag("error.message", str(error))
        return self

    def finish(self):
        duration_ms = (time.time() - self.start_time) * 1000
        trace_data = {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "operation": self.name,
            "duration_ms": round(duration_ms, 2),
            "status": self.status,
            "tags": self.tags,
        }
        logger.info(f"TRACE: {json.dumps(trace_data, default=str)}")
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.set_error(exc_val)
        self.finish()

class Tracer:
    def __init__(self, service_name: str):
        self.service_name = service_name

    def start_span(self, name: str, trace_id: str = None) -> TraceSpan:
        span = TraceSpan(name, trace_id)
        span.add_tag("service.name", self.service_name)
        return span

    def start_span_from_request(self, request: Request, operation_name: str) -> TraceSpan:
        span = self.start_span(operation_name, request.headers.get("X-Trace-ID"))
        span.add_tag("http.method", request.method)
        span.add_tag("http.path", request.url.path)
        return span

coin_tracer = Tracer("coin-service")

def get_current_trace_id() -> Optional[str]:
    return trace_id_var.get()

def get_trace_headers() -> Dict[str, str]:
    """Headers for propagating trace context to outbound calls"""
    trace_id = get_current_trace_id()
    return {"X-Trace-ID": trace_id} if trace_id else {}

async def tracing_middleware(request: Request, call_next, tracer: Tracer):
    """FastAPI middleware for automatic request tracing"""
    operation_name = f"{request.method} {request.url.path}"

    with tracer.start_span_from_request(request, operation_name) as span:
        request.state.trace_id = span.trace_id
        request.state.request_id = span.span_id
        response = await call_next(request)
        span.add_tag("http.status_code", response.status_code)
        if response.status_code >= 400:
            span.status = "error"
        response.headers["X-Trace-ID"] = span.trace_id
        return response
