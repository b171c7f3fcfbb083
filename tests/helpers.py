from __future__ import annotations

from healing_locators.config.schema import ElementFingerprint, ElementLocator, SelectorOptions
from healing_locators.core.fingerprint import FingerprintBuilder
from healing_locators.core.generator import SelectorGenerator
from healing_locators.core.snapshot_tree import HtmlElementTree
from healing_locators.core.strategies import StrategyContext
from healing_locators.core.tree import BoundingBox

LOGIN_PAGE = """
<html>
  <body>
    <div class="card login-card">
      <form id="login-form" class="login">
        <input id="email" name="email" type="email" data-testid="email-input" placeholder="Email" />
        <input id="password" name="password" type="password" placeholder="Password" />
        <button id="login-button" type="submit" class="btn btn-primary">Sign In</button>
      </form>
      <a href="/reset">Forgot password</a>
    </div>
  </body>
</html>
"""

# Same page after a re-render that dropped the generated ids.
LOGIN_PAGE_RERENDERED = """
<html>
  <body>
    <div class="card login-card">
      <form class="login">
        <input name="email" type="email" placeholder="Email" />
        <input name="password" type="password" placeholder="Password" />
        <button type="submit" class="btn btn-primary">Sign In</button>
      </form>
      <a href="/reset">Forgot password</a>
    </div>
  </body>
</html>
"""

LOGIN_LAYOUT = {
    "#email": BoundingBox(x=40, y=120, width=240, height=32),
    "#password": BoundingBox(x=40, y=170, width=240, height=32),
    "#login-button": BoundingBox(x=40, y=220, width=120, height=36),
}

RERENDERED_LAYOUT = {
    "input[name='email']": BoundingBox(x=40, y=120, width=240, height=32),
    "input[name='password']": BoundingBox(x=40, y=170, width=240, height=32),
    "button[type='submit']": BoundingBox(x=40, y=220, width=120, height=36),
}


def page(body: str) -> str:
    return f"<html><body>{body}</body></html>"


def build_tree(body: str, layout: dict[str, BoundingBox] | None = None) -> HtmlElementTree:
    return HtmlElementTree(page(body), layout=layout)


def login_tree() -> HtmlElementTree:
    return HtmlElementTree(LOGIN_PAGE, layout=LOGIN_LAYOUT)


def rerendered_login_tree() -> HtmlElementTree:
    return HtmlElementTree(LOGIN_PAGE_RERENDERED, layout=RERENDERED_LAYOUT)


def fingerprint_of(tree: HtmlElementTree, selector: str) -> ElementFingerprint:
    return FingerprintBuilder(tree).build(tree.find(selector))


def record_locator(tree: HtmlElementTree, selector: str, key: str = "", options: SelectorOptions | None = None) -> ElementLocator:
    return FingerprintBuilder(tree).capture(tree.find(selector), options=options, key=key)


def make_context(tree: HtmlElementTree, original_selector: str, options: SelectorOptions | None = None) -> StrategyContext:
    return StrategyContext(
        tree=tree,
        generator=SelectorGenerator(tree),
        original_selector=original_selector,
        options=options or SelectorOptions(),
        find=tree.find,
    )
