# ABOUTME: Automation session protocol the workflow steps drive, plus a dry-run session
# ABOUTME: Selector lists are tried in order so steps survive small page changes

from collections.abc import Sequence
from typing import Protocol

from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.retry import PipelineError

# 1x1 transparent PNG returned by sessions that have nothing to capture
BLANK_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000001e221bc330000000049454e44ae426082"
)


class SelectorNotFoundError(PipelineError):
    """Raised when none of a step's candidate selectors is on the page."""

    def __init__(self, selectors: Sequence[str]):
        super().__init__(f"No element matched any of: {', '.join(selectors)}")
        self.selectors = tuple(selectors)


class AutomationSession(Protocol):
    """One job-scoped driver session. Not safe for concurrent use."""

    base_url: str

    async def goto(self, url: str, *, timeout: float | None = None) -> None: ...

    async def click_first(self, selectors: Sequence[str]) -> str:
        """Click the first matching selector and return it."""
        ...

    async def fill_first(self, selectors: Sequence[str], value: str) -> str: ...

    async def select_first(self, selectors: Sequence[str], value: str) -> str: ...

    async def is_present(self, selectors: Sequence[str]) -> bool: ...

    async def read_text(self, selectors: Sequence[str]) -> str | None: ...

    async def evaluate(self, script: str) -> None: ...

    async def wait(self, seconds: float) -> None: ...

    async def screenshot(self) -> bytes: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    async def open(self) -> AutomationSession: ...


class DryRunSession:
    """Session that records every action instead of driving a browser.

    Every selector is treated as present, so a dry run walks the full step
    table and shows what a live run would do.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.actions: list[tuple[str, ...]] = []
        self.closed = False
        self.logger = get_logger(__name__)

    def _record(self, *action: str) -> None:
        self.actions.append(action)
        self.logger.debug("Dry-run action", action=action[0], target=action[1] if len(action) > 1 else None)

    async def goto(self, url: str, *, timeout: float | None = None) -> None:
        self._record("goto", url)

    async def click_first(self, selectors: Sequence[str]) -> str:
        self._record("click", selectors[0])
        return selectors[0]

    async def fill_first(self, selectors: Sequence[str], value: str) -> str:
        # Values are never recorded, they may be passwords
        self._record("fill", selectors[0])
        return selectors[0]

    async def select_first(self, selectors: Sequence[str], value: str) -> str:
        self._record("select", selectors[0], value)
        return selectors[0]

    async def is_present(self, selectors: Sequence[str]) -> bool:
        return True

    async def read_text(self, selectors: Sequence[str]) -> str | None:
        return None

    async def evaluate(self, script: str) -> None:
        self._record("evaluate")

    async def wait(self, seconds: float) -> None:
        return None

    async def screenshot(self) -> bytes:
        self._record("screenshot")
        return BLANK_PNG

    async def close(self) -> None:
        self.closed = True


class DryRunSessionFactory:
    def __init__(self, base_url: str):
        self.base_url = base_url

    async def open(self) -> DryRunSession:
        return DryRunSession(self.base_url)


class ConnectivityError(PipelineError):
    """Raised when no candidate entry URL answers the pre-flight check."""

    pass


class ConnectivityCheck:
    """Pre-flight check run once the session is open.

    Tries the session's base URL and then each alternative. The first URL
    that loads becomes the session's base URL for the rest of the run.
    """

    def __init__(self, alternatives: Sequence[str] = (), timeout_seconds: float = 5.0):
        self.alternatives = tuple(alternatives)
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger(__name__)

    async def __call__(self, session: AutomationSession) -> None:
        candidates = [session.base_url, *(url for url in self.alternatives if url != session.base_url)]
        failures = []
        for url in candidates:
            try:
                await session.goto(url, timeout=self.timeout_seconds)
            except Exception as e:
                self.logger.warning("Entry URL unreachable", url=url, error=str(e))
                failures.append(f"{url}: {type(e).__name__}")
                continue
            session.base_url = url
            self.logger.info("Connectivity check passed", url=url)
            return
        raise ConnectivityError(f"No entry URL reachable ({'; '.join(failures)})")
