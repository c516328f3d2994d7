import asyncio
import subprocess

import pytest

from gorgon import assets
from gorgon.assets import SassCompiler, find_executable
from gorgon.errors import AssetCompileError
from gorgon.storage import LocalStorage

MISSING_SASS = "gorgon-test-missing-sass"


def write(root, path, text):
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


def compile_entry(tmp_path, compiler=None, entry="styles/main.scss"):
    compiler = compiler or SassCompiler(executable=MISSING_SASS, project_root=tmp_path)
    storage = LocalStorage(tmp_path)
    source = (tmp_path / entry).read_text(encoding="utf-8")
    return asyncio.run(compiler.compile(source, entry, storage))


def test_find_executable_prefers_path(monkeypatch, tmp_path):
    monkeypatch.setattr(assets.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert find_executable("sass", tmp_path) == "/usr/bin/sass"


def test_find_executable_falls_back_to_node_modules(monkeypatch, tmp_path):
    monkeypatch.setattr(assets.shutil, "which", lambda name: None)
    local = tmp_path / "node_modules" / ".bin" / "sass"
    local.parent.mkdir(parents=True)
    local.write_text("", encoding="utf-8")
    assert find_executable("sass", tmp_path) == str(local)
    assert find_executable("sass", tmp_path / "elsewhere") is None
    assert find_executable("sass") is None


def test_imports_are_inlined(tmp_path):
    write(tmp_path, "styles/main.scss", '@import "base";\n@import "parts/buttons";\nbody{}\n')
    write(tmp_path, "styles/_base.scss", "html{margin:0}")
    write(tmp_path, "styles/parts/buttons.scss", '@import "../vars";\n.btn{}')
    write(tmp_path, "styles/_vars.scss", "$c: red;")

    css = compile_entry(tmp_path)
    assert "@import" not in css
    assert css.index("html{margin:0}") < css.index("$c: red;") < css.index(".btn{}")
    assert css.rstrip().endswith("body{}")


def test_remote_url_and_unresolved_imports_are_kept(tmp_path):
    write(
        tmp_path,
        "styles/main.scss",
        '@import url(fonts.css);\n@import "https://cdn.example.com/x.css";\n@import "missing";\n',
    )
    css = compile_entry(tmp_path)
    assert "@import url(fonts.css);" in css
    assert '@import "https://cdn.example.com/x.css";' in css
    assert '@import "missing";' in css


def test_import_cycle_raises(tmp_path):
    write(tmp_path, "styles/main.scss", '@import "a";')
    write(tmp_path, "styles/_a.scss", '@import "b";')
    write(tmp_path, "styles/_b.scss", '@import "a";')
    with pytest.raises(AssetCompileError, match="cycle"):
        compile_entry(tmp_path)


def test_runs_sass_when_available(monkeypatch, tmp_path):
    write(tmp_path, "styles/main.scss", "a { color: red; }")
    calls = []

    def fake_run(cmd, input, capture_output, text):
        calls.append((cmd, input))
        return subprocess.CompletedProcess(cmd, 0, stdout="a{color:red}", stderr="")

    monkeypatch.setattr(assets, "find_executable", lambda name, root=None: "/bin/sass")
    monkeypatch.setattr(assets.subprocess, "run", fake_run)

    assert compile_entry(tmp_path, SassCompiler()) == "a{color:red}"
    cmd, source = calls[0]
    assert cmd == ["/bin/sass", "--stdin", "--style=compressed", "--no-source-map"]
    assert source == "a { color: red; }"


def test_sass_failure_raises(monkeypatch, tmp_path):
    write(tmp_path, "styles/main.scss", "a {")

    def fake_run(cmd, input, capture_output, text):
        return subprocess.CompletedProcess(cmd, 65, stdout="", stderr="expected }")

    monkeypatch.setattr(assets, "find_executable", lambda name, root=None: "/bin/sass")
    monkeypatch.setattr(assets.subprocess, "run", fake_run)

    with pytest.raises(AssetCompileError, match="expected }"):
        compile_entry(tmp_path, SassCompiler())


def test_unknown_output_style_is_rejected(tmp_path):
    write(tmp_path, "styles/main.scss", "a{}")
    compiler = SassCompiler(executable=MISSING_SASS, project_root=tmp_path)
    with pytest.raises(ValueError):
        asyncio.run(
            compiler.compile("a{}", "styles/main.scss", LocalStorage(tmp_path), "nested")
        )
