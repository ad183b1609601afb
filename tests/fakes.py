"""Shared test doubles: temp-file databases and fake Playwright pages."""

import os
import shutil
import tempfile
from typing import Any, Dict, List, Optional

from bandspider.database import Database


class TempDatabase:
    """SQLite database in a temp directory, shared safely between threads."""

    def __init__(self):
        self.dir = tempfile.mkdtemp(prefix="bandspider-test-")
        self.db = Database(f"sqlite:///{os.path.join(self.dir, 'test.sqlite')}")
        self.db.create_schema()

    def cleanup(self):
        self.db.close()
        shutil.rmtree(self.dir, ignore_errors=True)


class FakeResponse:
    def __init__(self, status: int = 200, url: str = ""):
        self.status = status
        self.url = url


class FakeElement:
    """Just enough of playwright's ElementHandle for the page handlers."""

    def __init__(
        self,
        text: Optional[str] = None,
        attrs: Optional[Dict[str, str]] = None,
        children: Optional[Dict[str, "FakeElement"]] = None,
        lists: Optional[Dict[str, List[Any]]] = None,
        height: float = 100.0,
    ):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.lists = lists or {}
        self.height = height
        self.clicks = 0

    def text_content(self):
        return self.text

    def get_attribute(self, name):
        return self.attrs.get(name)

    def click(self):
        self.clicks += 1

    def query_selector(self, selector):
        return self.children.get(selector)

    def eval_on_selector_all(self, selector, expression):
        return list(self.lists.get(selector, []))

    def bounding_box(self):
        return {"x": 0, "y": 0, "width": 100, "height": self.height}

    def wait_for_selector(self, selector, timeout=None):
        return None


class FakePage(FakeElement):
    """A page whose navigation outcome and DOM are scripted by the test."""

    def __init__(self, status: int = 200, goto_error: Optional[Exception] = None, **kwargs):
        super().__init__(**kwargs)
        self.status = status
        self.goto_error = goto_error
        self.visited: List[str] = []

    def goto(self, url, timeout=None, wait_until=None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        return FakeResponse(self.status, url)

    def evaluate(self, expression, arg=None):
        return None


class FakeSession:
    """Stands in for BrowserSession in orchestrator tests."""

    def __init__(self, page: FakePage):
        self.page = page
        self.recycled = 0
        self.closed = False

    def open(self):
        return self.page

    def recycle(self):
        self.recycled += 1
        return self.page

    def close(self):
        self.closed = True
