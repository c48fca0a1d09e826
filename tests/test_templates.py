from dataclasses import dataclass

import jinja2
import pytest

from infraforge.templates import (
    TemplateLoader,
    render_to_file,
    render_to_string,
    write_key_file,
)


@dataclass
class _Data:
    cluster_name: str
    regions: list


@pytest.fixture
def loader(tmp_path):
    tpl_dir = tmp_path / "tpl"
    tpl_dir.mkdir()
    (tpl_dir / "simple.tpl").write_text(
        "cluster={{ cluster_name }}{% for r in regions %} {{ r }}{% endfor %}\n"
    )
    return TemplateLoader(tpl_dir)


def test_render_dict(loader):
    tpl = loader.load_template("simple.tpl")
    out = render_to_string(tpl, {"cluster_name": "c1", "regions": ["eu", "us"]})
    assert out == "cluster=c1 eu us\n"


def test_render_dataclass_matches_dict(loader):
    tpl = loader.load_template("simple.tpl")
    data = _Data("c1", ["eu"])
    assert render_to_string(tpl, data) == render_to_string(
        tpl, {"cluster_name": "c1", "regions": ["eu"]}
    )


def test_missing_template_raises(loader):
    with pytest.raises(jinja2.TemplateNotFound):
        loader.load_template("absent.tpl")


def test_undefined_variable_raises(loader):
    tpl = loader.load_template("simple.tpl")
    with pytest.raises(jinja2.UndefinedError):
        render_to_string(tpl, {"regions": []})


def test_render_to_file_creates_directory(loader, tmp_path):
    tpl = loader.load_template("simple.tpl")
    out_dir = tmp_path / "out" / "nested"
    path = render_to_file(tpl, out_dir, "main.tf", _Data("c2", []))
    assert path == out_dir / "main.tf"
    assert path.read_text() == "cluster=c2\n"


def test_write_key_file(tmp_path):
    path = write_key_file("public-key", tmp_path / "keys", "public.pem")
    assert path.read_text() == "public-key"
    assert path.stat().st_mode & 0o077 == 0