from .race import race_first_settled, wait_for_any_selector
from .selectors import LoginSelectors
from .session import BrowserSession, PopupContext

__all__ = ["BrowserSession", "LoginSelectors", "PopupContext", "race_first_settled", "wait_for_any_selector"]
