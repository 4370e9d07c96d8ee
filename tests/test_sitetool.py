import os

import pytest

import sitetool
import utilities
from conftest import CONTENT, write


@pytest.fixture
def configured(monkeypatch, site, tmp_path):
    monkeypatch.setattr(utilities, "SITE_SOURCE", site)
    monkeypatch.setattr(utilities, "SITE_OUTPUT", str(tmp_path / "public"))
    monkeypatch.setattr(utilities, "SITE_INCLUDES", "incl")
    monkeypatch.setattr(utilities, "SITE_CHECK_EXTERNAL", 0)
    return site


def test_help(capsys):
    assert sitetool.main(["sitetool.py"]) == 1
    assert sitetool.main(["sitetool.py", "unknown"]) == 1
    assert sitetool.main(["sitetool.py", "help"]) == 0
    out = capsys.readouterr().out
    assert "./sitetool.py build force" in out
    assert "SITE_SOURCE=" in out


def test_state(capsys):
    assert sitetool.main(["sitetool.py", "state"]) == 0
    out = capsys.readouterr().out
    for name, _comment, _default in utilities.CONFIGURATIONS:
        assert f"{name}=" in out


def test_build(configured, tmp_path):
    assert sitetool.main(["sitetool.py", "build"]) == 0
    assert os.path.exists(tmp_path / "public" / "index.html")
    assert sitetool.main(["sitetool.py", "build", "force"]) == 0


def test_build_error(configured, capsys):
    write(configured, "bad.html", "<#NOPE>")
    assert sitetool.main(["sitetool.py", "build"]) == 1
    assert "bad.html:1: Undefined name: «NOPE»" in capsys.readouterr().out


def test_check(configured, capsys):
    assert sitetool.main(["sitetool.py", "check"]) == 0
    write(configured, "broken.html", '<#def TITLE>x</#def><a href="nothing.html">x</a>')
    assert sitetool.main(["sitetool.py", "check"]) == 1
    out = capsys.readouterr().out
    assert "[broken-link] Not found: «nothing.html»" in out
    assert "[title-not-in-head]" in out


def test_check_real_content(monkeypatch):
    monkeypatch.setattr(utilities, "SITE_SOURCE", CONTENT)
    monkeypatch.setattr(utilities, "SITE_INCLUDES", "incl")
    monkeypatch.setattr(utilities, "SITE_CHECK_EXTERNAL", 0)
    assert sitetool.main(["sitetool.py", "check"]) == 0


def test_init_globals(monkeypatch):
    monkeypatch.setenv("SITE_HTTP", "8080")
    monkeypatch.setenv("SITE_SOURCE", "pages")
    utilities.init_globals()
    try:
        assert utilities.SITE_HTTP == 8080
        assert utilities.SITE_SOURCE == "pages"
    finally:
        monkeypatch.undo()
        utilities.init_globals()
    assert utilities.SITE_SOURCE == os.getenv("SITE_SOURCE", "content")
