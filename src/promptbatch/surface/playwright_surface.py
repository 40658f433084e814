"""Playwright implementation of the interaction surface.

Drives a Chromium page in a persistent profile, so a session signed in once
by hand is reused across runs. All selectors come from SelectorConfig.

Driver errors are converted at this boundary: Playwright timeouts become
SurfaceTimeout, any other Playwright error becomes SurfaceError.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from playwright.async_api import BrowserContext, Locator, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from promptbatch.core.config import SurfaceConfig
from promptbatch.core.errors import BrowserStartupError, SurfaceError, SurfaceTimeout
from promptbatch.core.logging import get_logger
from promptbatch.surface.base import InteractionSurface
from promptbatch.surface.files import describe_file
from promptbatch.utils.time import utc_now

_logger = get_logger("surface.playwright")

_BUSY_JS = """
(selector) => {
    const button = document.querySelector(selector);
    return !button || button.hasAttribute('disabled');
}
"""

_IDLE_JS = """
(selector) => {
    const button = document.querySelector(selector);
    return !!button && !button.hasAttribute('disabled');
}
"""

_JS_CLICK = """
(selector) => {
    const button = document.querySelector(selector);
    if (!button) return false;
    button.removeAttribute('disabled');
    button.click();
    return true;
}
"""

_READ_INPUT_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return '';
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') return el.value;
    return el.innerText || el.textContent || '';
}
"""

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _ms(seconds: float) -> float:
    return seconds * 1000


class PlaywrightSurface(InteractionSurface):
    """Chat surface backed by a Playwright-driven Chromium page.

    Example usage:
        surface = PlaywrightSurface(config.surface)
        await surface.open()
        try:
            await surface.ensure_ready()
            ...
        finally:
            await surface.close()
    """

    def __init__(self, config: SurfaceConfig) -> None:
        self.config = config
        self.selectors = config.selectors
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._reply_baseline = 0

    @property
    def name(self) -> str:
        return "playwright"

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SurfaceError("Surface is not open")
        return self._page

    @asynccontextmanager
    async def _driver_errors(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise SurfaceTimeout(f"{action} timed out: {e.message}") from e
        except PlaywrightError as e:
            raise SurfaceError(f"{action} failed: {e.message}") from e

    # Lifecycle

    async def open(self) -> None:
        cfg = self.config
        cfg.profile_dir.mkdir(parents=True, exist_ok=True)
        _logger.info(
            "surface.opening",
            url=cfg.url,
            profile_dir=str(cfg.profile_dir),
            headless=cfg.headless,
        )
        try:
            self._playwright = await async_playwright().start()
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(cfg.profile_dir),
                headless=cfg.headless,
                viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
            )
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            await self._page.goto(
                cfg.url, wait_until="domcontentloaded", timeout=_ms(cfg.page_load_timeout)
            )
        except PlaywrightError as e:
            await self.close()
            raise BrowserStartupError(f"Could not open {cfg.url}: {e.message}") from e

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                _logger.debug("surface.close_failed", error=e.message)
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = None
        self._playwright = None
        self._page = None

    async def ensure_ready(self, timeout: float | None = None) -> None:
        wait = timeout if timeout is not None else self.config.page_load_timeout
        async with self._driver_errors("waiting for the message input"):
            await self.page.wait_for_selector(
                self.selectors.textarea, state="visible", timeout=_ms(wait)
            )

    # Text entry

    def _input(self) -> Locator:
        return self.page.locator(self.selectors.textarea).first

    async def _read_input(self) -> str:
        text: str = await self.page.evaluate(_READ_INPUT_JS, self.selectors.textarea)
        return text.strip()

    async def _type_text(self, text: str) -> None:
        box = self._input()
        await box.click()
        await box.fill("")
        lines = text.split("\n")
        for index, line in enumerate(lines):
            if line:
                await box.press_sequentially(line, delay=self.config.typing_delay_ms)
            if index < len(lines) - 1:
                # Enter alone would send the message
                await self.page.keyboard.press("Shift+Enter")

    async def _insert_text(self, text: str) -> None:
        await self._input().fill(text)

    def _text_landed(self, entered: str, expected: str) -> bool:
        expected_len = len(expected.strip())
        return bool(entered) and len(entered) >= expected_len * self.config.min_text_ratio

    async def submit_input(self, text: str) -> None:
        await self.ensure_ready()
        direct = len(text) > self.config.direct_insert_threshold
        _logger.debug("surface.entering_text", length=len(text), direct=direct)
        async with self._driver_errors("entering text"):
            if direct:
                await self._insert_text(text)
            else:
                try:
                    await self._type_text(text)
                except PlaywrightError as e:
                    _logger.warning("surface.typing_failed", error=e.message)
                    await self._insert_text(text)

            entered = await self._read_input()
            if not self._text_landed(entered, text):
                _logger.warning(
                    "surface.text_incomplete", entered=len(entered), expected=len(text)
                )
                await self._insert_text(text)
                entered = await self._read_input()
        if not self._text_landed(entered, text):
            raise SurfaceError(
                f"Message text did not land in the input ({len(entered)} of {len(text)} chars)"
            )

    async def verify_input(self, text: str) -> None:
        async with self._driver_errors("verifying text"):
            entered = await self._read_input()
            if self._text_landed(entered, text):
                return
            _logger.warning("surface.text_lost", entered=len(entered), expected=len(text))
            await self._insert_text(text)
            entered = await self._read_input()
        if not self._text_landed(entered, text):
            raise SurfaceError("Message text disappeared before sending and could not be restored")

    # Attachments

    async def attach_resources(self, paths: list[Path]) -> None:
        if not paths:
            return
        files = [str(p) for p in paths]
        for path in paths:
            _logger.debug("surface.attaching", **describe_file(path))
        async with self._driver_errors("attaching files"):
            file_input = self.page.locator(self.selectors.file_input)
            if await file_input.count() > 0:
                await file_input.first.set_input_files(files)
            else:
                async with self.page.expect_file_chooser(
                    timeout=_ms(self.config.send_confirm_timeout)
                ) as chooser_info:
                    await self.page.locator(self.selectors.upload_button).first.click()
                chooser = await chooser_info.value
                await chooser.set_files(files)
        _logger.info("surface.attached", count=len(files))

    # Sending

    async def _wait_busy(self) -> bool:
        try:
            await self.page.wait_for_function(
                _BUSY_JS,
                arg=self.selectors.send_button,
                timeout=_ms(self.config.send_confirm_timeout),
            )
        except PlaywrightTimeoutError:
            return False
        return True

    async def _send_by_js_click(self) -> None:
        await self.page.evaluate(_JS_CLICK, self.selectors.send_button)

    async def _send_by_click(self) -> None:
        await self.page.locator(self.selectors.send_button).first.click(delay=100)

    async def _send_by_shortcut(self) -> None:
        await self._input().focus()
        await self.page.keyboard.press("Meta+Enter")
        if await self._wait_busy():
            return
        await self.page.keyboard.press("Control+Enter")

    async def trigger_operation(self) -> None:
        async with self._driver_errors("counting replies"):
            self._reply_baseline = await self.page.locator(
                self.selectors.assistant_message
            ).count()

        approaches: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("js_click", self._send_by_js_click),
            ("click", self._send_by_click),
            ("shortcut", self._send_by_shortcut),
        ]
        for name, approach in approaches:
            try:
                await approach()
            except PlaywrightError as e:
                _logger.debug("surface.send_approach_failed", approach=name, error=e.message)
                continue
            if await self._wait_busy():
                _logger.debug("surface.sent", approach=name, replies_before=self._reply_baseline)
                return
            _logger.debug("surface.send_not_confirmed", approach=name)
        raise SurfaceError("Send control never went busy after every send approach")

    async def recover(self, target_location: str | None = None) -> None:
        async with self._driver_errors("recovering the page"):
            if target_location:
                _logger.info("surface.recover_navigate", target=target_location)
                await self.page.goto(
                    target_location,
                    wait_until="domcontentloaded",
                    timeout=_ms(self.config.page_load_timeout),
                )
            else:
                _logger.info("surface.recover_reload")
                await self.page.reload(
                    wait_until="domcontentloaded", timeout=_ms(self.config.page_load_timeout)
                )
        await self.ensure_ready()
        self._reply_baseline = 0

    # Probes

    async def _any_visible(self, selectors: list[str]) -> bool:
        for selector in selectors:
            if await self.page.locator(selector).first.is_visible():
                return True
        return False

    async def probe_content(self) -> str:
        replies = self.page.locator(self.selectors.assistant_message)
        count = await replies.count()
        if count <= self._reply_baseline:
            return ""
        text: str = await replies.nth(count - 1).inner_text()
        return text.strip()

    async def probe_action_control_idle(self) -> bool:
        idle: bool = await self.page.evaluate(_IDLE_JS, self.selectors.send_button)
        return idle

    async def probe_secondary_marker(self) -> bool:
        return await self.page.locator(self.selectors.regenerate_button).count() > 0

    async def probe_partial_affordance(self) -> bool:
        return await self.page.locator(self.selectors.continue_button).count() > 0

    async def probe_upload_busy(self) -> bool:
        return await self._any_visible(self.selectors.loading_indicators)

    async def probe_upload_ready(self) -> bool:
        return await self._any_visible(self.selectors.file_indicators)

    async def probe_attachment_summary(self) -> str:
        counts = []
        for selector in self.selectors.file_indicators:
            count = await self.page.locator(selector).count()
            if count:
                counts.append(f"{selector}={count}")
        return ";".join(counts)

    async def probe_location(self) -> str:
        return self.page.url

    # Diagnostics

    async def screenshot(self, name: str) -> Path | None:
        directory = self.config.screenshot_dir
        if directory is None or self._page is None:
            return None
        directory.mkdir(parents=True, exist_ok=True)
        stamp = utc_now().strftime("%Y%m%dT%H%M%S")
        path = directory / f"{stamp}-{_UNSAFE_NAME.sub('_', name)}.png"
        await self._page.screenshot(path=str(path), full_page=True)
        return path
