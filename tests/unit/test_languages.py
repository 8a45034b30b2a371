"""Unit tests for the Python source model."""

import ast
import tempfile
import textwrap
from pathlib import Path

import pytest

from callograph.core.config import AnalysisConfig
from callograph.core.exceptions import ParseError
from callograph.languages import (
    PythonSourceModel,
    is_dependency_path,
    module_name,
    parse_source,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


def make_model(source: str) -> PythonSourceModel:
    return PythonSourceModel.from_sources({"mod.py": textwrap.dedent(source)})


def find_call(model: PythonSourceModel, name: str) -> ast.Call:
    """First call whose callee ends with the given name."""
    for file in model.files:
        for node in ast.walk(file.tree):
            if not isinstance(node, ast.Call):
                continue
            func = node.func
            if isinstance(func, ast.Name) and func.id == name:
                return node
            if isinstance(func, ast.Attribute) and func.attr == name:
                return node
    raise AssertionError(f"No call to {name}")


class TestPaths:
    """Tests for path helpers."""

    @pytest.mark.parametrize(
        ("relative", "expected"),
        [
            ("app.py", "app"),
            ("pkg/__init__.py", "pkg"),
            ("pkg/sub/mod.py", "pkg.sub.mod"),
            ("src/pkg/mod.py", "pkg.mod"),
            ("pkg/mod.pyi", "pkg.mod"),
        ],
    )
    def test_module_name(self, relative: str, expected: str) -> None:
        assert module_name(relative) == expected

    def test_module_name_custom_roots(self) -> None:
        assert module_name("lib/python/pkg/mod.py", ["lib/python"]) == "pkg.mod"

    @pytest.mark.parametrize(
        "relative",
        [
            "venv/lib/mod.py",
            ".venv/lib/mod.py",
            ".tox/py311/mod.py",
            "lib/site-packages/dep/mod.py",
            "node_modules/x/mod.py",
            "__pypackages__/3.11/lib/dep.py",
            "src/vendor/lib.py",
            "pkg.egg-info/mod.py",
        ],
    )
    def test_dependency_paths(self, relative: str) -> None:
        assert is_dependency_path(relative) is True

    @pytest.mark.parametrize("relative", ["app.py", "src/pkg/mod.py", "tests/test_venv.py"])
    def test_project_paths(self, relative: str) -> None:
        assert is_dependency_path(relative) is False


class TestSourceFile:
    """Tests for parsed file positions."""

    def test_position_and_offset(self) -> None:
        file = parse_source("x = 1\ndef f():\n    return x\n", "mod.py")
        fn = file.tree.body[1]
        assert file.position(fn) == (2, 1)
        assert file.offset(fn) == 6

    def test_offsets_count_characters(self) -> None:
        file = parse_source('s = "é"; t = 1\n', "mod.py")
        assign = file.tree.body[1]
        # "é" is two bytes in UTF-8 but one character
        assert file.offset(assign) == 9
        assert file.position(assign) == (1, 10)

    def test_flags(self) -> None:
        stub = parse_source("def f() -> int: ...\n", "pkg/mod.pyi")
        vendored = parse_source("", "vendor/lib.py")
        package = parse_source("", "pkg/__init__.py")

        assert stub.is_declaration is True
        assert stub.is_project is False
        assert vendored.is_dependency is True
        assert vendored.is_project is False
        assert package.is_package is True
        assert package.is_project is True

    def test_syntax_error(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_source("def broken(\n", "bad.py")
        assert "Syntax error in bad.py" in str(exc_info.value)


class TestResolution:
    """Tests for symbol and call resolution."""

    def test_resolve_symbol_local(self) -> None:
        model = make_model(
            """
            def f():
                value = 1
                return value
            """
        )
        ret = model.files[0].tree.body[0].body[1]
        symbol = model.resolve_symbol(ret.value)
        assert symbol is not None
        assert symbol.name == "value"
        assert len(symbol.declarations) == 1
        assert symbol.declarations[0].file is model.files[0]

    def test_resolve_symbol_builtin(self) -> None:
        model = make_model("def f():\n    return len\n")
        ret = model.files[0].tree.body[0].body[0]
        assert model.resolve_symbol(ret.value) is None

    def test_resolve_call_returns_declaration(self) -> None:
        model = make_model(
            """
            def helper():
                pass

            def caller():
                helper()
            """
        )
        declaration = model.resolve_call(find_call(model, "helper"))
        assert declaration is not None
        assert declaration.node is model.files[0].tree.body[0]
        assert declaration.is_project is True

    def test_qualified_names(self) -> None:
        model = make_model(
            """
            import os.path
            from datetime import datetime as dt

            def f(p):
                print(p)
                os.path.join(p)
                dt.now()
            """
        )
        assert model.qualified_name(find_call(model, "print").func) == "builtins.print"
        assert model.qualified_name(find_call(model, "join").func) == "os.path.join"
        assert model.qualified_name(find_call(model, "now").func) == "datetime.datetime.now"

    def test_qualified_name_of_project_function(self) -> None:
        model = PythonSourceModel.from_sources(
            {
                "pkg/__init__.py": "",
                "pkg/util.py": "def helper():\n    pass\n",
                "main.py": "from pkg.util import helper\n\ndef run():\n    helper()\n",
            }
        )
        assert model.qualified_name(find_call(model, "helper").func) == "pkg.util.helper"


class TestAwaitables:
    """Tests for awaitable inference."""

    def test_async_function_call(self) -> None:
        model = make_model(
            """
            async def fetch():
                pass

            def run():
                fetch()
            """
        )
        assert model.is_awaitable(find_call(model, "fetch")) is True

    def test_class_with_await(self) -> None:
        model = make_model(
            """
            class Later:
                def __await__(self):
                    yield

            def run():
                Later()
            """
        )
        assert model.is_awaitable(find_call(model, "Later")) is True

    def test_name_bound_to_awaitable(self) -> None:
        model = make_model(
            """
            import asyncio

            def run():
                task = asyncio.sleep(1)
                return task
            """
        )
        ret = model.files[0].tree.body[1].body[1]
        assert model.is_awaitable(ret.value) is True

    def test_event_loop_method(self) -> None:
        model = make_model(
            """
            import asyncio

            def run(fn):
                loop = asyncio.get_running_loop()
                loop.run_in_executor(None, fn)
            """
        )
        assert model.is_awaitable(find_call(model, "run_in_executor")) is True

    def test_plain_call(self) -> None:
        model = make_model(
            """
            def helper():
                return 1

            def run():
                helper()
            """
        )
        assert model.is_awaitable(find_call(model, "helper")) is False

    def test_is_async_callable(self) -> None:
        model = make_model(
            """
            async def handler():
                pass

            def sync_handler():
                pass

            def run(register):
                register(handler)
                register(sync_handler)
            """
        )
        calls = [
            node
            for node in ast.walk(model.files[0].tree)
            if isinstance(node, ast.Call) and isinstance(node.func, ast.Name)
        ]
        async_arg, sync_arg = (call.args[0] for call in calls)
        assert model.is_async_callable(async_arg) is True
        assert model.is_async_callable(sync_arg) is False


class TestLoad:
    """Tests for loading a project from disk."""

    def test_load_skips_bad_files(self, temp_dir: Path) -> None:
        (temp_dir / "good.py").write_text("def ok():\n    pass\n")
        (temp_dir / "bad.py").write_text("def broken(\n")
        (temp_dir / "__pycache__").mkdir()
        (temp_dir / "__pycache__" / "cached.py").write_text("x = 1\n")

        model = PythonSourceModel.load(AnalysisConfig(root=temp_dir))

        assert [f.relative for f in model.files] == ["good.py"]
        assert len(model.errors) == 1
        assert "bad.py" in str(model.errors[0])
