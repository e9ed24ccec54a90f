from __future__ import annotations

from r2fm import templates


def test_main_page_inlines_assets_and_bucket():
    page = templates.render_main_page("media-bucket")

    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Bucket File Manager</title>" in page
    assert "media-bucket" in page
    assert "--primary-color" in page
    assert "checkLogin" in page
    assert "{{" not in page


def test_render_replaces_every_placeholder():
    assert templates._render("{{a}}-{{b}}-{{a}}", {"a": 1, "b": "x"}) == "1-x-1"
