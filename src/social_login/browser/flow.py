from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import SocialLoginConfig, coerce_config, validate_credentials
from ..errors import UIWaitTimeout
from ..models import ExtractionResult, origin_of
from .race import wait_for_any_selector
from .selectors import LoginSelectors
from .session import BrowserSession, PopupContext, delay


logger = logging.getLogger(__name__)


class SocialLoginFlow:
    """
    Drives one social-provider login in a fresh browser and reads back the session state.

    Stages run strictly in order: trigger login, optionally hop into the provider popup,
    username, password, optional consent, hop back, then cookies + storage.
    """

    def __init__(self, config: SocialLoginConfig, *, selectors: Optional[LoginSelectors] = None) -> None:
        self.config = config
        self.selectors = selectors or LoginSelectors()
        self._page: Optional[Page] = None

    async def run(self) -> ExtractionResult:
        cfg = self.config
        async with BrowserSession.launch(headless=cfg.headless, args=cfg.args) as session:
            self._page = session.page
            try:
                return await self._run_stages(session)
            except Exception:
                if cfg.debug_dir and self._page is not None:
                    await session.save_debug(self._page, debug_dir=cfg.debug_dir, name_prefix="login_failure")
                raise

    async def _run_stages(self, session: BrowserSession) -> ExtractionResult:
        cfg = self.config

        await session.goto(cfg.login_url)
        await self.login(session.page)

        popup = PopupContext(session)
        if cfg.is_popup:
            self._page = await popup.enter(session.page, delay_ms=cfg.popup_delay)
        page = self._page

        await session.screenshot(page, cfg.screenshot_path)
        logger.info("before type_username")
        await self.type_username(page)
        logger.info("after type_username")

        logger.info("before type_password")
        await self.type_password(page)
        logger.info("after type_password")

        logger.info("before check_user_consent_if_needed")
        await self.check_user_consent_if_needed(page)
        logger.info("after check_user_consent_if_needed")

        if cfg.is_popup:
            self._page = page = await popup.restore(delay_ms=cfg.popup_delay)

        if cfg.cookie_delay:
            await delay(cfg.cookie_delay)

        logger.info("before get_cookies")
        cookies = await self.get_cookies(page, session)
        logger.info("after get_cookies")

        local_storage = await self.get_local_storage(page, session)
        session_storage = await self.get_session_storage(page, session)

        result = ExtractionResult(
            cookies=cookies,
            local_storage=local_storage,
            session_storage=session_storage,
            origin=origin_of(getattr(page, "url", "") or ""),
        )

        logger.info("before finalize_session")
        await session.close()
        logger.info("after finalize_session")
        return result

    async def _wait(self, page: Page, selector: str, *, visible: bool = False) -> None:
        timeout = self.config.wait_timeout_ms
        try:
            await page.wait_for_selector(selector, state="visible" if visible else "attached", timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise UIWaitTimeout(selector, timeout_ms=timeout) from e

    async def login(self, page: Page) -> None:
        cfg = self.config
        if cfg.pre_login_selector:
            # e.g. a cookie banner covering the provider button
            await self._wait(page, cfg.pre_login_selector)
            await page.click(cfg.pre_login_selector)

        await self._wait(page, cfg.login_selector)

        # Only an explicit False disables the delay; 0/None still yield once.
        if cfg.login_selector_delay is not False:
            await delay(cfg.login_selector_delay)

        await page.click(cfg.login_selector)

    async def type_username(self, page: Page) -> None:
        sel = self.selectors
        await self._wait(page, sel.email_input)
        await page.fill(sel.email_input, self.config.username)
        await page.click(sel.next_button(headless=self.config.headless))

    async def type_password(self, page: Page) -> None:
        sel = self.selectors
        await self._wait(page, sel.password_input, visible=True)
        await page.fill(sel.password_input, self.config.password)

        button = await wait_for_any_selector(
            page,
            sel.submit_candidates,
            state="visible",
            timeout=self.config.wait_timeout_ms,
        )
        await page.click(button)

    async def check_user_consent_if_needed(self, page: Page) -> bool:
        """
        Click the consent button if it shows up. Returning users (or apps not on localhost)
        often skip the consent screen, so not finding it is a normal outcome.
        """
        selector = self.config.user_consent_selector
        if not selector:
            return False

        try:
            await page.wait_for_selector(selector, state="attached", timeout=self.config.wait_timeout_ms)
        except PlaywrightError:
            # timed out, or the provider popup closed itself after the password step
            logger.info("No user consent prompt (selector=%s); continuing.", selector, exc_info=True)
            return False

        try:
            await page.click(selector)
        except PlaywrightError:
            logger.info("Consent prompt disappeared before it could be clicked (selector=%s).", selector, exc_info=True)
            return False
        return True

    async def get_cookies(self, page: Page, session: BrowserSession) -> List[Dict[str, Any]]:
        cfg = self.config
        await self._wait(page, cfg.post_login_selector)

        if cfg.get_all_browser_cookies:
            cookies = await session.all_cookies(page)
        else:
            cookies = await session.cookies_for_url(cfg.login_url)

        if cfg.logs:
            logger.info("Cookies: %s", json.dumps(cookies, indent=2, default=str))
        return cookies

    async def get_local_storage(self, page: Page, session: BrowserSession) -> Dict[str, str]:
        return await self._read_storage(page, session, "localStorage")

    async def get_session_storage(self, page: Page, session: BrowserSession) -> Dict[str, str]:
        return await self._read_storage(page, session, "sessionStorage")

    async def _read_storage(self, page: Page, session: BrowserSession, area: str) -> Dict[str, str]:
        await self._wait(page, self.config.post_login_selector)
        data = await session.read_storage(page, area)
        if self.config.logs:
            logger.info("%s: %s", area, json.dumps(data, indent=2))
        return data


async def perform_social_login(
    config: Union[SocialLoginConfig, Mapping[str, Any]],
    *,
    selectors: Optional[LoginSelectors] = None,
) -> ExtractionResult:
    """
    Log in through the configured social provider and return cookies + web storage.

    Raises `ConfigurationError` before launching anything if credentials are missing.
    Stage progress is logged at INFO on this module's logger; the caller owns logging setup.
    """
    cfg = coerce_config(config)
    validate_credentials(cfg)
    return await SocialLoginFlow(cfg, selectors=selectors).run()


def run_social_login(
    config: Union[SocialLoginConfig, Mapping[str, Any]],
    *,
    selectors: Optional[LoginSelectors] = None,
) -> ExtractionResult:
    return asyncio.run(perform_social_login(config, selectors=selectors))
