from collections.abc import Iterator

import pytest
from sse_starlette.sse import AppStatus


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_sse_exit_event() -> Iterator[None]:
    # sse-starlette caches an exit event bound to the first event loop that waits on it.
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield
