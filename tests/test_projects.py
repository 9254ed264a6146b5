import pytest

from nodesmith.errors import InvalidInputError
from nodesmith.projects import (
    BITCOIN,
    ELECTRS,
    BuildStrategy,
    parse_version,
    project_for,
    select_strategy,
)


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("v29.1", (29, 1)),
        ("25.0", (25, 0)),
        ("v0.10.5", (0, 10)),
        ("nightly", (0, 0)),
        ("v30", (0, 0)),
    ],
)
def test_parse_version(tag: str, expected: tuple[int, int]) -> None:
    assert parse_version(tag) == expected


def test_bitcoin_strategy_switches_at_cutover() -> None:
    assert select_strategy(BITCOIN, "v24.0") is BuildStrategy.AUTOTOOLS
    assert select_strategy(BITCOIN, "24.2") is BuildStrategy.AUTOTOOLS
    assert select_strategy(BITCOIN, "25.0") is BuildStrategy.CMAKE
    assert select_strategy(BITCOIN, "v29.1") is BuildStrategy.CMAKE


def test_unparseable_bitcoin_version_falls_back_to_legacy_build() -> None:
    assert select_strategy(BITCOIN, "nightly") is BuildStrategy.AUTOTOOLS


def test_electrs_always_uses_cargo() -> None:
    assert select_strategy(ELECTRS, "v0.10.5") is BuildStrategy.CARGO


def test_source_dir_name_strips_leading_v() -> None:
    assert BITCOIN.source_dir_name("v27.0") == "bitcoin-27.0"
    assert ELECTRS.source_dir_name("0.10.5") == "electrs-0.10.5"


def test_project_for_rejects_unknown_kind() -> None:
    assert project_for("electrs") is ELECTRS
    with pytest.raises(InvalidInputError):
        project_for("litecoin")
