from __future__ import annotations

from selenium.common.exceptions import (
    InvalidSelectorException,
    NoSuchElementException,
    StaleElementReferenceException,
    WebDriverException,
)
from selenium.webdriver.common.by import By

from healing_locators.core.exceptions import InvalidSelectorError
from healing_locators.core.tree import BoundingBox
from healing_locators.utils.selectors import infer_selector_type, normalize_text

ATTRIBUTES_SCRIPT = """
return Array.from(arguments[0].attributes).reduce((acc, attr) => {
  acc[attr.name] = attr.value;
  return acc;
}, {});
"""

PARENT_SCRIPT = "return arguments[0].parentElement;"

CHILDREN_SCRIPT = "return Array.from(arguments[0].children);"

ELEMENT_AT_POINT_SCRIPT = "return document.elementFromPoint(arguments[0], arguments[1]);"


class SeleniumElementTree:
    """Element tree backed by a live WebDriver session."""

    def __init__(self, driver) -> None:
        self.driver = driver

    @property
    def page_source(self) -> str:
        return self.driver.page_source

    def find(self, selector: str):
        matches = self.find_all(selector)
        return matches[0] if matches else None

    def find_all(self, selector: str) -> list:
        try:
            return list(self.driver.find_elements(self._by(selector), selector))
        except InvalidSelectorException as exc:
            raise InvalidSelectorError(selector, exc.msg or "") from exc
        except NoSuchElementException:
            return []

    def attributes(self, handle) -> dict[str, str]:
        try:
            return dict(self.driver.execute_script(ATTRIBUTES_SCRIPT, handle) or {})
        except StaleElementReferenceException:
            return {}

    def text(self, handle) -> str:
        try:
            return normalize_text(handle.get_attribute("textContent"))
        except StaleElementReferenceException:
            return ""

    def bounding_box(self, handle) -> BoundingBox:
        try:
            rect = handle.rect
        except StaleElementReferenceException:
            return BoundingBox()
        return BoundingBox(
            x=float(rect.get("x", 0.0)),
            y=float(rect.get("y", 0.0)),
            width=float(rect.get("width", 0.0)),
            height=float(rect.get("height", 0.0)),
        )

    def element_at_point(self, x: float, y: float):
        try:
            return self.driver.execute_script(ELEMENT_AT_POINT_SCRIPT, x, y)
        except WebDriverException:
            return None

    def tag_name(self, handle) -> str:
        try:
            return (handle.tag_name or "").lower()
        except StaleElementReferenceException:
            return ""

    def parent(self, handle):
        try:
            return self.driver.execute_script(PARENT_SCRIPT, handle)
        except StaleElementReferenceException:
            return None

    def children(self, handle) -> list:
        try:
            return list(self.driver.execute_script(CHILDREN_SCRIPT, handle) or [])
        except StaleElementReferenceException:
            return []

    def is_visible(self, handle) -> bool:
        try:
            return bool(handle.is_displayed())
        except StaleElementReferenceException:
            return False

    @staticmethod
    def _by(selector: str) -> str:
        return By.XPATH if infer_selector_type(selector) == "xpath" else By.CSS_SELECTOR
