from __future__ import annotations

from typing import Optional


class SocialLoginError(RuntimeError):
    """
    Base class for failures raised by the login pipeline.
    """


class ConfigurationError(SocialLoginError, ValueError):
    """
    Raised before any browser resource is acquired when the configuration is unusable
    (missing credentials, missing URL/selectors, invalid values).
    """


class UIWaitTimeout(SocialLoginError, TimeoutError):
    """
    Raised when a required selector does not show up within the wait timeout.
    """

    def __init__(self, selector: str, *, timeout_ms: Optional[float] = None) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        if timeout_ms:
            msg = f"Timed out waiting for selector {selector!r} ({timeout_ms:.0f}ms)"
        else:
            msg = f"Timed out waiting for selector {selector!r}"
        super().__init__(msg)


class RaceFailure(SocialLoginError):
    """
    Raised when the first candidate to settle in a selector race settled with an error.

    The race is first-settled-wins: an early failure aborts it even if another candidate
    would have matched a moment later.
    """

    def __init__(self, selector: Optional[str], index: int) -> None:
        self.selector = selector
        self.index = index
        what = repr(selector) if selector is not None else f"#{index}"
        super().__init__(f"Selector race failed: candidate {what} settled first with an error")
