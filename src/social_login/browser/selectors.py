from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LoginSelectors:
    """
    Provider sign-in UI hooks. The provider renders different DOM in headless and headful mode,
    and the final submit button varies by account type, so keep every selector here.
    """

    email_input: str = 'input[type="email"]'
    password_input: str = 'input[type="password"]'

    # "Next" after the username step
    next_headless: str = "#next"
    next_headful: str = "#identifierNext"

    # Raced after the password is typed; whichever becomes visible first is clicked.
    submit_candidates: tuple[str, ...] = ("#signIn", "#passwordNext", "#submit")

    def next_button(self, *, headless: bool) -> str:
        return self.next_headless if headless else self.next_headful
