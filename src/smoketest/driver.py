from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait


@dataclass
class BrowserLogEntry:
    timestamp_ms: float
    level: str
    message: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "BrowserLogEntry":
        return cls(
            timestamp_ms=float(raw.get("timestamp", 0) or 0),
            level=str(raw.get("level", "INFO")),
            message=str(raw.get("message", "")),
        )


class AutomationDriver(ABC):
    """Remote-control client for the application under test.

    The smoke run only needs a small slice of the WebDriver protocol; keeping
    it behind this interface lets tests swap in fakes.
    """

    @property
    @abstractmethod
    def session_id(self) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def create_session(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def delete_session(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close_window(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def browser_log(self) -> List[BrowserLogEntry]:
        raise NotImplementedError

    @abstractmethod
    def screenshot_png(self) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def wait_for(self, selector: str, timeout_s: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def click(self, selector: str, timeout_s: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def type_text(self, selector: str, text: str, timeout_s: float) -> None:
        raise NotImplementedError


class SeleniumDriver(AutomationDriver):
    """Drives the Electron app through a chromedriver listening on `endpoint`."""

    def __init__(
        self,
        endpoint: str,
        app_binary: str,
        app_args: Sequence[str] = (),
    ):
        self.endpoint = endpoint
        self.app_binary = app_binary
        self.app_args = list(app_args)
        self._driver: Optional[WebDriver] = None

    def _options(self) -> ChromeOptions:
        opts = ChromeOptions()
        opts.binary_location = self.app_binary
        for arg in self.app_args:
            opts.add_argument(arg)
        opts.set_capability("goog:loggingPrefs", {"browser": "ALL"})
        return opts

    def _require(self) -> WebDriver:
        if self._driver is None:
            raise WebDriverException("no active webdriver session")
        return self._driver

    @property
    def session_id(self) -> Optional[str]:
        if self._driver is None:
            return None
        return self._driver.session_id

    def create_session(self) -> str:
        drv = webdriver.Remote(command_executor=self.endpoint, options=self._options())
        self._driver = drv
        return str(drv.session_id)

    def delete_session(self) -> None:
        drv, self._driver = self._driver, None
        if drv is not None:
            drv.quit()

    def close_window(self) -> None:
        if self._driver is not None:
            self._driver.close()

    def browser_log(self) -> List[BrowserLogEntry]:
        return [BrowserLogEntry.from_raw(raw) for raw in self._require().get_log("browser")]

    def screenshot_png(self) -> bytes:
        return self._require().get_screenshot_as_png()

    def wait_for(self, selector: str, timeout_s: float) -> None:
        WebDriverWait(self._require(), timeout_s).until(
            EC.presence_of_element_located((By.CSS_SELECTOR, selector))
        )

    def click(self, selector: str, timeout_s: float) -> None:
        el = WebDriverWait(self._require(), timeout_s).until(
            EC.element_to_be_clickable((By.CSS_SELECTOR, selector))
        )
        el.click()

    def type_text(self, selector: str, text: str, timeout_s: float) -> None:
        el = WebDriverWait(self._require(), timeout_s).until(
            EC.element_to_be_clickable((By.CSS_SELECTOR, selector))
        )
        el.clear()
        el.send_keys(text)
