"""Tests for the Playwright HTML -> PNG renderer with the browser mocked out."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from playwright.sync_api import Error as PlaywrightError

from slackcast.errors import DependencyError
from slackcast.services.renderer import LAUNCH_ARGS, render_html_to_png


@pytest.fixture
def browser():
    with patch("playwright.sync_api.sync_playwright") as sp:
        p = sp.return_value.__enter__.return_value
        yield p.chromium.launch.return_value


def test_renders_and_clamps_viewport(browser):
    page = browser.new_page.return_value
    page.evaluate.return_value = {"w": 3000, "h": 400}
    page.screenshot.return_value = b"\x89PNG"

    assert render_html_to_png("<table></table>") == b"\x89PNG"

    page.set_viewport_size.assert_called_once_with({"width": 2200, "height": 400})
    assert browser.new_page.call_args.kwargs["device_scale_factor"] == 2
    assert "<table></table>" in page.set_content.call_args.args[0]
    browser.close.assert_called_once()


def test_launch_args_are_container_safe():
    assert "--no-sandbox" in LAUNCH_ARGS
    assert "--disable-dev-shm-usage" in LAUNCH_ARGS


def test_browser_error_becomes_dependency_error(browser):
    browser.new_page.side_effect = PlaywrightError("crashed")
    with pytest.raises(DependencyError) as exc_info:
        render_html_to_png("<p>x</p>")
    assert exc_info.value.dependency == "renderer"
    browser.close.assert_called_once()
