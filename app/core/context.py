import contextvars
from contextlib import contextmanager
from typing import Iterator

_tenant_id: contextvars.ContextVar[str] = contextvars.ContextVar("tenant_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_job_name: contextvars.ContextVar[str] = contextvars.ContextVar("job_name", default="-")


def set_tenant_id(tenant_id: str) -> None:
    _tenant_id.set(tenant_id)


def get_tenant_id() -> str:
    return _tenant_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def get_job_name() -> str:
    return _job_name.get()


@contextmanager
def job_context(job_name: str, tenant_id: str, run_id: str) -> Iterator[None]:
    """Bind scheduled-job identifiers so log records outside a request stay traceable."""
    tokens = (
        _job_name.set(job_name),
        _tenant_id.set(tenant_id),
        _request_id.set(run_id),
    )
    try:
        yield
    finally:
        _job_name.reset(tokens[0])
        _tenant_id.reset(tokens[1])
        _request_id.reset(tokens[2])


def clear_context() -> None:
    _tenant_id.set("-")
    _request_id.set("-")
    _job_name.set("-")
