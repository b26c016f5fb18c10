import pytest

from taskpilot.editing.python import PythonEditor
from taskpilot.editing.registry import default_editors
from taskpilot.errors import UnsupportedEditError

SOURCE = '''"""Module doc."""

import sys
import os


class Greeter(Base):
    """Says hello."""

    greeting = "hi"

    def hello(self, name):
        return f"{self.greeting} {name}"

    def bye(self):
        return "bye"


def main():
    return Greeter().hello("x")
'''


@pytest.fixture
def editor() -> PythonEditor:
    return PythonEditor()


def test_registry_selects_by_extension():
    registry = default_editors()
    assert isinstance(registry.for_path("pkg/mod.py"), PythonEditor)
    assert registry.for_path("index.ts") is None
    assert ".py" in registry.supported_extensions()


def test_list_structure(editor):
    listing = editor.list_structure(SOURCE)
    assert "import sys" in listing
    assert "class Greeter(Base)" in listing
    assert "def hello(self, name)" in listing
    assert "greeting = ..." in listing
    assert "def main()" in listing


def test_search_by_pattern(editor):
    assert "method Greeter.hello" in editor.search(SOURCE, "hel*")
    assert "function main" in editor.search(SOURCE, "main")
    assert "No definitions match" in editor.search(SOURCE, "zzz")


def test_add_and_remove_method(editor):
    added = editor.add_method(SOURCE, "Greeter", "def wave(self):\n    return 'o/'")
    assert "    def wave(self):\n        return 'o/'\n" in added
    assert added.index("def wave") < added.index("def main")
    removed = editor.remove_method(added, "Greeter", "bye")
    assert "def bye" not in removed
    assert "def wave" in removed
    with pytest.raises(ValueError):
        editor.add_method(SOURCE, "Greeter", "def hello(self):\n    pass")


def test_modify_method_body(editor):
    changed = editor.modify_method(SOURCE, "Greeter", "bye", new_body="return 'later'")
    assert "    def bye(self):\n        return 'later'\n" in changed
    replaced = editor.modify_method(
        SOURCE, "Greeter", "hello", method_code="def hello(self, name):\n    return name"
    )
    assert "        return name\n" in replaced
    assert "self.greeting} {name}" not in replaced


def test_properties(editor):
    added = editor.add_property(SOURCE, "Greeter", "volume: int = 3")
    assert '    greeting = "hi"\n    volume: int = 3\n' in added
    removed = editor.remove_property(added, "Greeter", "greeting")
    assert "greeting =" not in removed
    with pytest.raises(ValueError):
        editor.remove_property(SOURCE, "Greeter", "missing")


def test_removing_last_member_leaves_pass(editor):
    source = "class Empty:\n    def only(self):\n        pass\n"
    assert editor.remove_method(source, "Empty", "only") == "class Empty:\n    pass\n"


def test_add_class_and_decorator(editor):
    added = editor.add_class(SOURCE, "Child", extends_class="Greeter", implements=["Mixin"])
    assert added.endswith("\n\n\nclass Child(Greeter, Mixin):\n    pass\n")
    decorated = editor.add_decorator(SOURCE, "staticmethod", class_name="Greeter", function_name="bye")
    assert "    @staticmethod\n    def bye(self):" in decorated
    with pytest.raises(ValueError):
        editor.add_decorator(decorated, "@staticmethod", class_name="Greeter", function_name="bye")


def test_functions(editor):
    added = editor.add_function(SOURCE, "def helper():\n    return 1")
    assert added.endswith("\n\n\ndef helper():\n    return 1\n")
    removed = editor.remove_function(added, "main")
    assert "def main" not in removed
    assert "def helper" in removed
    with pytest.raises(ValueError):
        editor.remove_function(SOURCE, "absent")


def test_imports(editor):
    added = editor.add_import(SOURCE, "from pathlib import Path")
    assert "import os\nfrom pathlib import Path\n" in added
    assert editor.add_import(added, "import os") == added
    removed = editor.remove_import(added, module_path="pathlib")
    assert "pathlib" not in removed
    organized = editor.organize_imports(SOURCE)
    assert "import os\nimport sys\n" in organized


def test_organize_groups_standard_library_before_third_party(editor):
    source = "from __future__ import annotations\nimport httpx\nimport json\nimport httpx\n\nx = 1\n"
    organized = editor.organize_imports(source)
    assert organized.startswith(
        "from __future__ import annotations\n\nimport json\n\nimport httpx\n"
    )


def test_type_alias_goes_after_imports(editor):
    result = editor.add_type_alias(SOURCE, "Names = list[str]")
    assert "import os\n\nNames = list[str]\n" in result


def test_crlf_sources_keep_line_endings(editor):
    source = "class A:\r\n    x = 1\r\n"
    result = editor.add_method(source, "A", "def f(self):\n    return 1")
    assert "\r\n" in result
    assert "\n" not in result.replace("\r\n", "")


def test_invalid_result_is_rejected(editor):
    with pytest.raises(ValueError):
        editor.add_function(SOURCE, "def broken(:\n    pass")


def test_interfaces_are_not_supported(editor):
    with pytest.raises(UnsupportedEditError, match="not supported by the python editor"):
        editor.add_interface(SOURCE, "class P(Protocol): ...")
