"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from rangerelay.editor.document_model import Element, Page, TextField, editable_div


def make_flat_page(text: str, **field_kwargs) -> tuple[Page, TextField]:
    field = TextField(text, **field_kwargs)
    page = Page(active_element=field)
    page.body.append_child(field)
    return page, field


def make_structured_page(*chunks: str, editing_commands: bool = True) -> tuple[Page, Element]:
    root = editable_div(*(Element("span", chunk) for chunk in chunks))
    page = Page(active_element=root, editing_commands=editing_commands)
    page.body.append_child(root)
    return page, root


@pytest.fixture
def flat_page() -> tuple[Page, TextField]:
    return make_flat_page("hello world")


@pytest.fixture
def structured_page() -> tuple[Page, Element]:
    return make_structured_page("AB", "CD")
