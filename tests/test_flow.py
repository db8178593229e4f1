from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

import social_login.browser.flow as flow_mod
import social_login.browser.session as session_mod
from fake_playwright import FakeWorld
from social_login import ConfigurationError, RaceFailure, UIWaitTimeout, perform_social_login
from social_login.browser.flow import SocialLoginFlow, run_social_login
from social_login.browser.session import BrowserSession, PopupContext
from social_login.config import SocialLoginConfig


EMAIL = 'input[type="email"]'
PASSWORD = 'input[type="password"]'


def _config(tmp_path: Path, **overrides: Any) -> Dict[str, Any]:
    cfg: Dict[str, Any] = {
        "username": "u@example.com",
        "password": "p",
        "login_url": "https://accounts.example/login",
        "login_selector": "#google-btn",
        "post_login_selector": "#welcome",
        "headless": True,
        "login_selector_delay": False,
        "screenshot_path": str(tmp_path / "screenshot.png"),
    }
    cfg.update(overrides)
    return cfg


def _login_page_elements(*, headless: bool = True) -> Dict[str, float]:
    return {
        "#google-btn": 0.0,
        EMAIL: 0.0,
        ("#next" if headless else "#identifierNext"): 0.0,
        PASSWORD: 0.0,
        "#passwordNext": 0.01,
        "#welcome": 0.0,
    }


@pytest.fixture
def world(monkeypatch) -> FakeWorld:
    w = FakeWorld()
    w.main.elements = _login_page_elements()
    w.main.url = "https://accounts.example/login"
    w.context.cookie_jar = [
        {"name": "sid", "value": "abc", "domain": ".accounts.example", "path": "/"},
        {"name": "NID", "value": "xyz", "domain": ".google.com", "path": "/"},
    ]
    monkeypatch.setattr(session_mod, "async_playwright", w.async_playwright)
    return w


def test_missing_credentials_fail_before_browser_launch(world: FakeWorld, tmp_path: Path) -> None:
    for missing in ("username", "password"):
        with pytest.raises(ConfigurationError):
            asyncio.run(perform_social_login(_config(tmp_path, **{missing: ""})))
    assert world.launches == []


def test_invalid_mapping_is_a_configuration_error(world: FakeWorld, tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    del cfg["post_login_selector"]
    with pytest.raises(ConfigurationError):
        asyncio.run(perform_social_login(cfg))
    assert world.launches == []


def test_end_to_end_headless_without_popup(world: FakeWorld, tmp_path: Path) -> None:
    world.main.local_storage = {"token": "t1"}

    result = asyncio.run(perform_social_login(_config(tmp_path)))

    assert world.launches == [{"headless": True}]
    assert world.main.viewport == {"width": 1280, "height": 800}
    clicks = [a[2] for a in world.actions_of("click")]
    assert clicks == ["#google-btn", "#next", "#passwordNext"]
    fills = [(a[2], a[3]) for a in world.actions_of("fill")]
    assert fills == [(EMAIL, "u@example.com"), (PASSWORD, "p")]
    assert ("main", "wait", PASSWORD, "visible") in world.actions
    # cookies, localStorage and sessionStorage each wait for the post-login marker
    assert len([a for a in world.actions_of("wait") if a[2] == "#welcome"]) == 3

    assert world.context.cookie_requests == ["https://accounts.example/login"]
    assert [c["name"] for c in result.cookies] == ["sid"]
    assert result.local_storage == {"token": "t1"}
    assert result.session_storage == {}
    assert result.origin == "https://accounts.example"

    assert (tmp_path / "screenshot.png").exists()
    assert world.browser.close_calls == 1


def test_headful_next_button(world: FakeWorld, tmp_path: Path) -> None:
    world.main.elements = _login_page_elements(headless=False)

    asyncio.run(perform_social_login(_config(tmp_path, headless=False)))

    assert world.launches == [{"headless": False}]
    clicks = [a[2] for a in world.actions_of("click")]
    assert "#identifierNext" in clicks
    assert "#next" not in clicks


def test_launch_args_are_passed_through(world: FakeWorld, tmp_path: Path) -> None:
    asyncio.run(perform_social_login(_config(tmp_path, args=["--no-sandbox"])))
    assert world.launches == [{"headless": True, "args": ["--no-sandbox"]}]


def test_pre_login_selector_clicked_first(world: FakeWorld, tmp_path: Path) -> None:
    world.main.elements["#accept-cookies"] = 0.0

    asyncio.run(perform_social_login(_config(tmp_path, preLoginSelector="#accept-cookies")))

    clicks = [a[2] for a in world.actions_of("click")]
    assert clicks[:2] == ["#accept-cookies", "#google-btn"]


def test_missing_consent_prompt_is_not_an_error(world: FakeWorld, tmp_path: Path) -> None:
    result = asyncio.run(perform_social_login(_config(tmp_path, user_consent_selector="#approve")))

    assert ("main", "wait", "#approve", "attached") in world.actions
    assert "#approve" not in [a[2] for a in world.actions_of("click")]
    assert [c["name"] for c in result.cookies] == ["sid"]


def test_consent_prompt_clicked_when_present(world: FakeWorld, tmp_path: Path) -> None:
    world.main.elements["#approve"] = 0.0

    asyncio.run(perform_social_login(_config(tmp_path, user_consent_selector="#approve")))

    clicks = [a[2] for a in world.actions_of("click")]
    assert clicks[-1] == "#approve"


def test_check_user_consent_returns_outcome(world: FakeWorld, tmp_path: Path) -> None:
    page = world.page("p", elements={"#approve": 0.0})

    def check(selector: Optional[str]) -> bool:
        cfg = SocialLoginConfig.model_validate(_config(tmp_path, user_consent_selector=selector))
        return asyncio.run(SocialLoginFlow(cfg).check_user_consent_if_needed(page))

    assert check("#approve") is True
    assert check("#missing") is False
    assert check(None) is False


def test_race_failure_aborts_pipeline_and_closes_browser(world: FakeWorld, tmp_path: Path) -> None:
    world.main.failing = {"#signIn": 0.0}
    world.main.elements["#passwordNext"] = 0.02

    with pytest.raises(RaceFailure) as ei:
        asyncio.run(perform_social_login(_config(tmp_path)))

    assert ei.value.selector == "#signIn"
    assert world.browser.closed
    assert "#passwordNext" not in [a[2] for a in world.actions_of("click")]


def test_missing_post_login_marker_times_out_and_saves_debug(world: FakeWorld, tmp_path: Path) -> None:
    del world.main.elements["#welcome"]
    debug_dir = tmp_path / "debug"

    with pytest.raises(UIWaitTimeout) as ei:
        asyncio.run(perform_social_login(_config(tmp_path, debug_dir=str(debug_dir))))

    assert ei.value.selector == "#welcome"
    assert world.browser.close_calls == 1
    assert (debug_dir / "login_failure.png").exists()
    assert (debug_dir / "login_failure.html").read_text(encoding="utf-8") == "<html><body>main</body></html>"


def test_all_browser_cookies_use_cdp(world: FakeWorld, tmp_path: Path) -> None:
    result = asyncio.run(perform_social_login(_config(tmp_path, getAllBrowserCookies=True)))

    assert world.context.cdp_calls == ["Network.getAllCookies"]
    assert world.context.cookie_requests == []
    assert [c["name"] for c in result.cookies] == ["sid", "NID"]


def test_popup_round_trip(world: FakeWorld, tmp_path: Path) -> None:
    world.main.elements = {"#google-btn": 0.0, "#welcome": 0.0}
    world.main.session_storage = {"state": "s1"}
    world.popup = world.page("popup", elements=_login_page_elements())
    world.main.on_click = {"#google-btn": world.open_popup}

    result = asyncio.run(perform_social_login(_config(tmp_path, is_popup=True)))

    fills = [a for a in world.actions_of("fill")]
    assert {a[0] for a in fills} == {"popup"}
    assert ("popup", "screenshot", str(tmp_path / "screenshot.png")) in world.actions
    assert ("popup", "click", "#passwordNext") in world.actions
    welcome_waits = [a for a in world.actions_of("wait") if a[2] == "#welcome"]
    assert {a[0] for a in welcome_waits} == {"main"}
    assert result.session_storage == {"state": "s1"}


def test_login_selector_delay_only_skipped_for_false(world: FakeWorld, tmp_path: Path, monkeypatch) -> None:
    calls: List[Any] = []

    async def fake_delay(ms: Any) -> None:
        calls.append(ms)

    monkeypatch.setattr(flow_mod, "delay", fake_delay)

    asyncio.run(perform_social_login(_config(tmp_path, login_selector_delay=False)))
    assert calls == []

    asyncio.run(perform_social_login(_config(tmp_path, login_selector_delay=0)))
    assert calls == [0]

    cfg = _config(tmp_path)
    del cfg["login_selector_delay"]
    asyncio.run(perform_social_login(cfg))
    assert calls == [0, 250]


def test_cookie_delay_skipped_when_falsy(world: FakeWorld, tmp_path: Path, monkeypatch) -> None:
    calls: List[Any] = []

    async def fake_delay(ms: Any) -> None:
        calls.append(ms)

    monkeypatch.setattr(flow_mod, "delay", fake_delay)

    asyncio.run(perform_social_login(_config(tmp_path, cookie_delay=0)))
    assert calls == []
    asyncio.run(perform_social_login(_config(tmp_path, cookie_delay=500)))
    assert calls == [500]


def _popup_session(world: FakeWorld) -> BrowserSession:
    return BrowserSession(browser=world.browser, page=world.main)


def test_popup_context_restores_by_original_index(world: FakeWorld) -> None:
    other = world.page("other")
    world.popup = world.page("popup")
    world.context.pages = [other, world.main, world.popup]

    async def main() -> tuple:
        ctx = PopupContext(_popup_session(world))
        entered = await ctx.enter(world.main)
        world.context.pages.append(world.page("late"))
        restored = await ctx.restore()
        return entered, restored, ctx.original_index

    entered, restored, idx = asyncio.run(main())
    assert entered is world.popup
    assert restored is world.main
    assert idx == 1


def test_popup_context_restore_is_positional(world: FakeWorld) -> None:
    world.popup = world.page("popup")
    world.context.pages = [world.main, world.popup]

    async def main() -> Any:
        ctx = PopupContext(_popup_session(world))
        await ctx.enter(world.main)
        # The browser reorders its page list while the popup is active.
        world.context.pages.reverse()
        return await ctx.restore()

    assert asyncio.run(main()) is world.popup


def test_popup_context_without_popup_stays_on_current_page(world: FakeWorld) -> None:
    world.context.pages = [world.main]

    async def main() -> tuple:
        ctx = PopupContext(_popup_session(world))
        return await ctx.enter(world.main), await ctx.restore()

    entered, restored = asyncio.run(main())
    assert entered is world.main
    assert restored is world.main


def test_consent_wait_error_is_not_an_error(world: FakeWorld, tmp_path: Path) -> None:
    # e.g. the provider popup closed itself right after the password step
    world.main.failing = {"#approve": 0.0}

    result = asyncio.run(perform_social_login(_config(tmp_path, user_consent_selector="#approve")))

    assert "#approve" not in [a[2] for a in world.actions_of("click")]
    assert [c["name"] for c in result.cookies] == ["sid"]
    assert world.browser.close_calls == 1


_STAGE_LINES = (
    "before type_username",
    "after type_username",
    "before type_password",
    "after type_password",
    "before check_user_consent_if_needed",
    "after check_user_consent_if_needed",
    "before get_cookies",
    "after get_cookies",
    "before finalize_session",
    "after finalize_session",
)


def _flow_messages(caplog) -> List[str]:
    return [r.getMessage() for r in caplog.records if r.name == "social_login.browser.flow"]


def test_stage_trace_logged_without_logs_flag(world: FakeWorld, tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.INFO, logger="social_login")
    world.main.local_storage = {"token": "t1"}

    asyncio.run(perform_social_login(_config(tmp_path)))

    messages = _flow_messages(caplog)
    assert [m for m in messages if m in _STAGE_LINES] == list(_STAGE_LINES)
    assert not any(m.startswith(("Cookies:", "localStorage:", "sessionStorage:")) for m in messages)


def test_logs_flag_dumps_cookies_and_storage(world: FakeWorld, tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.INFO, logger="social_login")
    world.main.local_storage = {"token": "t1"}
    world.main.session_storage = {"nonce": "n1"}

    asyncio.run(perform_social_login(_config(tmp_path, logs=True)))

    messages = _flow_messages(caplog)
    assert [m for m in messages if m in _STAGE_LINES] == list(_STAGE_LINES)
    cookies = [m for m in messages if m.startswith("Cookies:")]
    assert len(cookies) == 1 and '"sid"' in cookies[0]
    local = [m for m in messages if m.startswith("localStorage:")]
    assert len(local) == 1 and '"token": "t1"' in local[0]
    session = [m for m in messages if m.startswith("sessionStorage:")]
    assert len(session) == 1 and '"nonce": "n1"' in session[0]


def test_run_social_login_is_a_sync_wrapper(world: FakeWorld, tmp_path: Path) -> None:
    world.main.session_storage = {"nonce": "n1"}

    result = run_social_login(_config(tmp_path))

    assert result.session_storage == {"nonce": "n1"}
    assert world.browser.closed

    with pytest.raises(ConfigurationError):
        run_social_login(_config(tmp_path, password=""))
