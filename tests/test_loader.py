"""Tests for resolving the conduit factory from an import path."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from pairgate.conduit import ConduitFactory, ConduitLoadError, load_conduit_factory

MODULE_SOURCE = textwrap.dedent(
    """
    class Factory:
        async def fetch_latest_version(self):
            return (2, 3000, 1)

        async def connect(self, config):
            raise NotImplementedError


    class Holder:
        factory = Factory()


    instance = Factory()
    not_a_factory = object()
    """
)


@pytest.fixture
def conduit_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    (tmp_path / "fake_conduit_mod.py").write_text(MODULE_SOURCE)
    monkeypatch.syspath_prepend(str(tmp_path))
    return "fake_conduit_mod"


class TestLoadConduitFactory:
    @pytest.mark.parametrize("spec", [None, ""])
    def test_not_configured(self, spec: str | None) -> None:
        assert load_conduit_factory(spec) is None

    def test_class_is_instantiated(self, conduit_module: str) -> None:
        factory = load_conduit_factory(f"{conduit_module}:Factory")

        assert isinstance(factory, ConduitFactory)
        assert type(factory).__name__ == "Factory"

    def test_instance_used_as_is(self, conduit_module: str) -> None:
        import fake_conduit_mod  # type: ignore[import-not-found]

        assert load_conduit_factory(f"{conduit_module}:instance") is fake_conduit_mod.instance

    def test_dotted_attribute(self, conduit_module: str) -> None:
        factory = load_conduit_factory(f"{conduit_module}:Holder.factory")
        assert isinstance(factory, ConduitFactory)

    @pytest.mark.parametrize("spec", ["no_colon", ":Factory", "module:"])
    def test_malformed_path(self, spec: str) -> None:
        with pytest.raises(ConduitLoadError, match="expected 'package.module:attribute'"):
            load_conduit_factory(spec)

    def test_missing_module(self) -> None:
        with pytest.raises(ConduitLoadError, match="Cannot import"):
            load_conduit_factory("pairgate_missing_module_xyz:Factory")

    def test_missing_attribute(self, conduit_module: str) -> None:
        with pytest.raises(ConduitLoadError, match="has no attribute"):
            load_conduit_factory(f"{conduit_module}:Missing")

    def test_object_without_contract(self, conduit_module: str) -> None:
        with pytest.raises(ConduitLoadError, match="does not provide"):
            load_conduit_factory(f"{conduit_module}:not_a_factory")
