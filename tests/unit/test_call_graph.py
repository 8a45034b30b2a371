"""Unit tests for call graph construction through the source model."""

import textwrap

from callograph.core.graph import CallGraph, build_call_graph
from callograph.core.inventory import collect_functions
from callograph.languages import PythonSourceModel


def build(sources: dict[str, str]) -> tuple[CallGraph, dict[str, str]]:
    """Build a graph from in-memory sources; also return name -> id."""
    model = PythonSourceModel.from_sources(
        {path: textwrap.dedent(source) for path, source in sources.items()}
    )
    functions = collect_functions(model)
    return build_call_graph(model, functions), {fn.name: fn.id for fn in functions}


def callee_names(graph: CallGraph, ids: dict[str, str], name: str) -> list[str]:
    names = {v: k for k, v in ids.items()}
    return [names[callee] for callee in graph.get_callees(ids[name])]


class TestSameModule:
    """Calls resolved within one module."""

    def test_direct_call(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                def helper():
                    return 1

                def caller():
                    return helper() + helper()
                """
            }
        )
        assert callee_names(graph, ids, "caller") == ["helper"]
        assert graph.num_edges == 1

    def test_every_function_is_a_vertex(self) -> None:
        graph, ids = build({"mod.py": "def alone():\n    pass\n"})
        assert ids["alone"] in graph
        assert graph.get_callees(ids["alone"]) == []

    def test_recursion(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                def a(n):
                    return b(n - 1) if n else 0

                def b(n):
                    return a(n)

                def fact(n):
                    return n * fact(n - 1) if n else 1
                """
            }
        )
        assert graph.has_edge(ids["a"], ids["b"])
        assert graph.has_edge(ids["b"], ids["a"])
        assert graph.has_edge(ids["fact"], ids["fact"])

    def test_calls_in_nested_function_belong_to_outer(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                def helper():
                    pass

                def outer():
                    def inner():
                        helper()
                    return inner
                """
            }
        )
        assert callee_names(graph, ids, "outer") == ["helper"]
        assert callee_names(graph, ids, "inner") == ["helper"]

    def test_lambda_assignment_is_callable(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                double = lambda x: x * 2

                def run():
                    return double(2)
                """
            }
        )
        assert callee_names(graph, ids, "run") == ["double"]

    def test_unresolved_and_builtin_calls_dropped(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                import json

                def run(callback):
                    callback()
                    print(len([]))
                    return json.dumps(unknown())
                """
            }
        )
        assert graph.get_callees(ids["run"]) == []


class TestMethods:
    """Calls through classes and instances."""

    def test_self_method(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Service:
                    def helper(self):
                        return 1

                    def run(self):
                        return self.helper()
                """
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_classmethod_receiver(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Config:
                    @classmethod
                    def defaults(cls):
                        return {}

                    @classmethod
                    def build(cls):
                        return cls.defaults()
                """
            }
        )
        assert callee_names(graph, ids, "build") == ["defaults"]

    def test_constructor_and_instance_method(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Repo:
                    def __init__(self, path):
                        self.path = path

                    def load(self):
                        return self.path

                def main():
                    repo = Repo("x")
                    return repo.load()
                """
            }
        )
        assert callee_names(graph, ids, "main") == ["__init__", "load"]

    def test_annotated_parameter(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Mailer:
                    def send(self, to):
                        return to

                def notify(mailer: Mailer, user):
                    mailer.send(user)
                """
            }
        )
        assert callee_names(graph, ids, "notify") == ["send"]

    def test_attribute_assigned_in_init(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Cache:
                    def get(self, key):
                        return key

                class Service:
                    def __init__(self):
                        self.cache = Cache()

                    def lookup(self, key):
                        return self.cache.get(key)
                """
            }
        )
        assert "get" in callee_names(graph, ids, "lookup")

    def test_inherited_method(self) -> None:
        graph, ids = build(
            {
                "mod.py": """
                class Base:
                    def save(self):
                        pass

                class Child(Base):
                    def run(self):
                        self.save()
                """
            }
        )
        assert callee_names(graph, ids, "run") == ["save"]


class TestImports:
    """Calls across modules."""

    def test_absolute_import(self) -> None:
        graph, ids = build(
            {
                "pkg/__init__.py": "",
                "pkg/util.py": "def helper():\n    return 1\n",
                "pkg/main.py": "from pkg.util import helper\n\ndef run():\n    return helper()\n",
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_relative_import(self) -> None:
        graph, ids = build(
            {
                "src/pkg/__init__.py": "",
                "src/pkg/util.py": "def helper():\n    return 1\n",
                "src/pkg/main.py": "from .util import helper\n\ndef run():\n    return helper()\n",
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_module_import_with_alias(self) -> None:
        graph, ids = build(
            {
                "pkg/__init__.py": "",
                "pkg/util.py": "def helper():\n    return 1\n",
                "pkg/main.py": "import pkg.util as u\n\ndef run():\n    return u.helper()\n",
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_reexport_through_package(self) -> None:
        graph, ids = build(
            {
                "pkg/__init__.py": "from pkg.util import helper\n",
                "pkg/util.py": "def helper():\n    return 1\n",
                "main.py": "import pkg\n\ndef run():\n    return pkg.helper()\n",
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_stub_target_dropped(self) -> None:
        graph, ids = build(
            {
                "typed.pyi": "def helper() -> int: ...\n",
                "main.py": "from typed import helper\n\ndef run():\n    return helper()\n",
            }
        )
        assert graph.get_callees(ids["run"]) == []

    def test_implementation_preferred_over_stub(self) -> None:
        graph, ids = build(
            {
                "typed.py": "def helper():\n    return 1\n",
                "typed.pyi": "def helper() -> int: ...\n",
                "main.py": "from typed import helper\n\ndef run():\n    return helper()\n",
            }
        )
        assert callee_names(graph, ids, "run") == ["helper"]

    def test_vendored_target_dropped(self) -> None:
        graph, ids = build(
            {
                "vendor/__init__.py": "",
                "vendor/lib.py": "def helper():\n    return 1\n",
                "main.py": "from vendor.lib import helper\n\ndef run():\n    return helper()\n",
            }
        )
        assert "helper" not in ids
        assert graph.get_callees(ids["run"]) == []
