"""Shared fixtures for generic-crud tests."""

from __future__ import annotations

import pytest

from generic_crud.query.predicates import build_default_registry


@pytest.fixture
def registry():
    """Fresh operator registry, safe to mutate per test."""
    return build_default_registry()
