"""Basic smoke tests."""

import muscli
import muscli.version
from muscli.app import build_parser


def test_version_defined() -> None:
    assert isinstance(muscli.__version__, str)


def test_version_single_source_of_truth() -> None:
    assert muscli.__version__ == muscli.version.__version__


def test_help_includes_version_epilog() -> None:
    help_text = build_parser().format_help()
    assert "Platform: " in help_text
    assert f"Version: muscli {muscli.__version__}" in help_text
