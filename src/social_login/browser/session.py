from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from ..errors import SocialLoginError


logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 800}

# Reads a Web Storage area (localStorage / sessionStorage) into a flat {key: value} object.
_READ_STORAGE_JS = """
(area) => {
  const store = window[area];
  const out = {};
  for (let i = 0; i < store.length; i++) {
    const key = store.key(i);
    out[key] = store.getItem(key);
  }
  return out;
}
"""


async def delay(ms: Optional[float]) -> None:
    await asyncio.sleep(float(ms or 0) / 1000)


class BrowserSession:
    """
    One Chromium process plus the pages opened in its default context.

    `launch()` is the only way to get one; it closes the browser on every exit path.
    """

    def __init__(self, *, browser: Browser, page: Page) -> None:
        self.browser = browser
        self.page = page
        self._closed = False

    @property
    def context(self) -> BrowserContext:
        return self.page.context

    @classmethod
    @asynccontextmanager
    async def launch(cls, *, headless: bool = False, args: Sequence[str] = ()) -> AsyncIterator["BrowserSession"]:
        launch_kwargs: Dict[str, Any] = {"headless": bool(headless)}
        if args:
            launch_kwargs["args"] = list(args)

        async with async_playwright() as p:
            # Prefer Playwright's bundled Chromium, fall back to an installed Chrome/Edge if it's missing.
            try:
                browser = await p.chromium.launch(**launch_kwargs)
            except Exception as e:
                msg = str(e)
                if "Executable doesn't exist" not in msg:
                    raise

                logger.warning(
                    "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                    msg,
                )
                try:
                    browser = await p.chromium.launch(channel="chrome", **launch_kwargs)
                except Exception:
                    browser = await p.chromium.launch(channel="msedge", **launch_kwargs)

            session: Optional[BrowserSession] = None
            try:
                page = await browser.new_page()
                await page.set_viewport_size(VIEWPORT)
                session = cls(browser=browser, page=page)
                yield session
            finally:
                if session is not None:
                    await session.close()
                else:
                    await browser.close()

    async def goto(self, url: str) -> None:
        await self.page.goto(url)

    def pages(self) -> List[Page]:
        return list(self.context.pages)

    async def screenshot(self, page: Page, path: str) -> None:
        out = Path(path)
        if out.parent != Path("."):
            out.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(out), full_page=True)

    async def cookies_for_url(self, url: str) -> List[Dict[str, Any]]:
        return list(await self.context.cookies(url))

    async def all_cookies(self, page: Page) -> List[Dict[str, Any]]:
        # Every cookie the browser holds, across all domains (Chromium-only CDP call).
        cdp = await self.context.new_cdp_session(page)
        try:
            res = await cdp.send("Network.getAllCookies")
        finally:
            await cdp.detach()
        return list((res or {}).get("cookies") or [])

    async def read_storage(self, page: Page, area: str) -> Dict[str, str]:
        data = await page.evaluate(_READ_STORAGE_JS, area)
        return dict(data or {})

    async def save_debug(self, page: Page, *, debug_dir: str, name_prefix: str) -> None:
        try:
            out_dir = Path(debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
            (out_dir / f"{name_prefix}.html").write_text(await page.content(), encoding="utf-8")
        except Exception:
            logger.debug("Failed to save debug artifacts.", exc_info=True)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.browser.close()


class PopupContext:
    """
    Switches the active page to a provider popup and back.

    The original page's position in the context's page list is captured by identity when entering,
    and the return switch selects whatever page sits at that position then. If no popup opened,
    "most recently opened page" is the current page itself.
    """

    def __init__(self, session: BrowserSession) -> None:
        self._session = session
        self.original_index: Optional[int] = None

    async def enter(self, page: Page, *, delay_ms: Optional[float] = None) -> Page:
        if delay_ms:
            await delay(delay_ms)

        pages = self._session.pages()
        self.original_index = next((i for i, p in enumerate(pages) if p is page), None)
        if not pages:
            raise SocialLoginError("Browser context has no open pages")

        popup = pages[-1]
        if popup is page:
            logger.warning("Popup login configured but no new page was opened; continuing on the current page.")
        else:
            logger.info("Switched to popup page (pages=%d url=%s)", len(pages), getattr(popup, "url", ""))
        return popup

    async def restore(self, *, delay_ms: Optional[float] = None) -> Page:
        if delay_ms:
            await delay(delay_ms)

        pages = self._session.pages()
        idx = self.original_index
        if idx is None or idx >= len(pages):
            raise SocialLoginError(f"Original page (index={idx}) is no longer open (pages={len(pages)})")

        page = pages[idx]
        logger.info("Switched back to original page (index=%d url=%s)", idx, getattr(page, "url", ""))
        return page
