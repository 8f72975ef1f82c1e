from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_engine_subpackage_is_shipped() -> None:
    content = (ROOT / "pyproject.toml").read_text(encoding="utf-8")
    assert "[tool.setuptools.packages.find]" in content
    assert 'where = ["src"]' in content
    assert "namespaces = true" in content
    # engine/ has no __init__.py, so only a namespace-aware search finds it
    assert not (ROOT / "src" / "companion_voice" / "engine" / "__init__.py").exists()
    assert (ROOT / "src" / "companion_voice" / "engine" / "vad.py").exists()
