"""Tests for name validation and target classification."""

from __future__ import annotations

import pytest

from mdns_client.names import (
    DiscoveryTarget,
    join_labels,
    name_key,
    normalize_name,
    split_labels,
    validate_name,
)


def test_instance_target() -> None:
    target = DiscoveryTarget.parse("libmdns Web Server._http._tcp.local")
    assert target.is_instance
    assert target.instance == "libmdns Web Server"
    assert target.service_type == "_http._tcp.local"


def test_instance_label_with_dots() -> None:
    target = DiscoveryTarget.parse("My.Printer._ipp._tcp.local.")
    assert target.name == "My\\.Printer._ipp._tcp.local"
    assert target.instance == "My.Printer"
    assert target.service_type == "_ipp._tcp.local"
    assert DiscoveryTarget.parse(target.name) == target


def test_split_and_join_labels() -> None:
    assert split_labels("My\\.Printer._ipp._tcp.local") == ["My.Printer", "_ipp", "_tcp", "local"]
    assert split_labels("a\\\\b.local") == ["a\\b", "local"]
    assert join_labels(["My.Printer", "a\\b", "local"]) == "My\\.Printer.a\\\\b.local"


@pytest.mark.parametrize(
    "name", ["_http._tcp.local", "_printer._sub._http._tcp.local", "printer.local"]
)
def test_service_type_targets(name: str) -> None:
    target = DiscoveryTarget.parse(name)
    assert not target.is_instance
    assert target.service_type == name


@pytest.mark.parametrize("name", ["", "   ", ".", "a..local", "x" * 64 + ".local", ".".join(["abc"] * 80)])
def test_invalid_names(name: str) -> None:
    with pytest.raises(ValueError):
        validate_name(name)


def test_normalization() -> None:
    assert normalize_name(" Host.Local. ") == "Host.Local"
    assert name_key("Host.Local.") == "host.local"
