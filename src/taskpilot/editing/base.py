"""Structured code editor interface.

Every operation takes the current file source and returns either a text
report (read-only operations) or the rewritten source. Editors implement the
subset their language supports; the rest raise ``UnsupportedEditError``.
"""

from __future__ import annotations

from taskpilot.errors import UnsupportedEditError


class CodeEditor:
    """Base structured editor; every operation is unsupported by default."""

    language = "generic"
    extensions: tuple[str, ...] = ()

    def _unsupported(self, operation: str) -> UnsupportedEditError:
        return UnsupportedEditError(
            f"{operation} is not supported by the {self.language} editor."
        )

    def list_structure(self, source: str) -> str:
        raise self._unsupported("ast_list_structure")

    def search(self, source: str, pattern: str) -> str:
        raise self._unsupported("search_ast")

    def rewrite(self, source: str, pattern: str, fix: str) -> str:
        raise self._unsupported("modify_ast")

    def add_class(
        self,
        source: str,
        class_name: str,
        extends_class: str | None = None,
        implements: list[str] | None = None,
    ) -> str:
        raise self._unsupported("ast_add_class")

    def add_method(self, source: str, class_name: str, method_code: str) -> str:
        raise self._unsupported("ast_add_method")

    def modify_method(
        self,
        source: str,
        class_name: str,
        method_name: str,
        method_code: str | None = None,
        new_body: str | None = None,
    ) -> str:
        raise self._unsupported("ast_modify_method")

    def remove_method(self, source: str, class_name: str, method_name: str) -> str:
        raise self._unsupported("ast_remove_method")

    def add_property(self, source: str, class_name: str, property_code: str) -> str:
        raise self._unsupported("ast_add_property")

    def remove_property(self, source: str, class_name: str, property_name: str) -> str:
        raise self._unsupported("ast_remove_property")

    def add_decorator(
        self,
        source: str,
        decorator_code: str,
        *,
        class_name: str | None = None,
        function_name: str | None = None,
    ) -> str:
        raise self._unsupported("ast_add_decorator")

    def add_interface(self, source: str, interface_code: str) -> str:
        raise self._unsupported("ast_add_interface")

    def add_type_alias(self, source: str, type_code: str) -> str:
        raise self._unsupported("ast_add_type_alias")

    def add_function(self, source: str, function_code: str) -> str:
        raise self._unsupported("ast_add_function")

    def remove_function(self, source: str, function_name: str) -> str:
        raise self._unsupported("ast_remove_function")

    def add_import(self, source: str, import_statement: str) -> str:
        raise self._unsupported("ast_add_import")

    def remove_import(
        self, source: str, import_statement: str | None = None, module_path: str | None = None
    ) -> str:
        raise self._unsupported("ast_remove_import")

    def organize_imports(self, source: str) -> str:
        raise self._unsupported("ast_organize_imports")
