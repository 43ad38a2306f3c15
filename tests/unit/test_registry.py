"""Unit tests for UserRegistry."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from captchagate.registry import UserRegistry


@pytest.mark.unit
class TestUserRegistry:
    def test_register_new_name(self) -> None:
        registry = UserRegistry()
        assert registry.register("alice") is True
        assert "alice" in registry

    def test_duplicate_is_ignored(self) -> None:
        registry = UserRegistry()
        registry.register("alice")
        assert registry.register("alice") is False
        assert len(registry) == 1

    def test_render_list_is_newline_separated(self) -> None:
        registry = UserRegistry()
        for name in ("bob", "alice"):
            registry.register(name)
        assert registry.render_list() == "alice\nbob"

    def test_empty_list(self) -> None:
        assert UserRegistry().render_list() == ""

    def test_concurrent_registration(self) -> None:
        registry = UserRegistry()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(registry.register, ["same"] * 50))
        assert results.count(True) == 1
        assert len(registry) == 1
