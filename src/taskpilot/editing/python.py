"""Python structured editor built on the standard library ``ast`` module.

Edits are applied to source lines located through node positions, so the
formatting and comments of untouched code survive. Every result is parsed
again before it is returned.
"""

from __future__ import annotations

import ast
import fnmatch
import io
import sys
import textwrap
from typing import Iterator

from taskpilot.editing.base import CodeEditor

_DEFS = (ast.FunctionDef, ast.AsyncFunctionDef)
_IMPORTS = (ast.Import, ast.ImportFrom)


def _parse(source: str, what: str = "file") -> ast.Module:
    try:
        return ast.parse(source)
    except SyntaxError as exc:
        raise ValueError(f"Cannot parse Python {what}: {exc.msg} (line {exc.lineno})") from exc


def _lines(source: str) -> list[str]:
    return io.StringIO(source, newline="").readlines()


def _newline(source: str) -> str:
    return "\r\n" if "\r\n" in source else "\n"


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _start(node: ast.stmt) -> int:
    decorators = getattr(node, "decorator_list", [])
    return min([node.lineno] + [decorator.lineno for decorator in decorators])


def _block(code: str, indent: str, newline: str) -> list[str]:
    text = textwrap.dedent(code.replace("\r\n", "\n")).strip("\n")
    return [(indent + line if line.strip() else "") + newline for line in text.split("\n")]


def _single_definition(code: str, kinds: tuple[type, ...], what: str) -> ast.stmt:
    tree = _parse(textwrap.dedent(code), what)
    if len(tree.body) != 1 or not isinstance(tree.body[0], kinds):
        raise ValueError(f"{what} must contain exactly one definition.")
    return tree.body[0]


def _find_class(tree: ast.Module, name: str) -> ast.ClassDef:
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name == name:
            return node
    raise ValueError(f"Class '{name}' not found.")


def _find_def(body: list[ast.stmt], name: str, owner: str) -> ast.stmt:
    for node in body:
        if isinstance(node, _DEFS) and node.name == name:
            return node
    raise ValueError(f"Function '{name}' not found in {owner}.")


def _has_def(body: list[ast.stmt], name: str) -> bool:
    return any(isinstance(node, _DEFS + (ast.ClassDef,)) and node.name == name for node in body)


def _terminate(lines: list[str], newline: str) -> None:
    if lines and not lines[-1].endswith(("\n", "\r")):
        lines[-1] += newline


def _delete_span(lines: list[str], start: int, end: int) -> None:
    """Delete 1-based inclusive lines, dropping the blank lines that led into them."""
    first = start - 1
    del lines[first:end]
    if first == 0:
        while lines and not lines[0].strip():
            del lines[0]
        return
    if first >= len(lines) or not lines[first].strip():
        while first > 0 and not lines[first - 1].strip():
            first -= 1
            del lines[first]


def _append_top_level(lines: list[str], block: list[str], newline: str) -> None:
    while lines and not lines[-1].strip():
        lines.pop()
    _terminate(lines, newline)
    if lines:
        lines.extend([newline, newline])
    lines.extend(block)


def _header_end(tree: ast.Module, lines: list[str]) -> int:
    """Index of the first line after the module docstring and leading comments."""
    body = tree.body
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant):
        if isinstance(body[0].value.value, str):
            return body[0].end_lineno or 0
    index = 0
    while index < len(lines) and lines[index].startswith("#"):
        index += 1
    return index


def _body_indent(cls: ast.ClassDef, lines: list[str]) -> str:
    return _indent_of(lines[cls.body[0].lineno - 1]) or "    "


def _definitions(tree: ast.Module) -> Iterator[tuple[str, str, ast.stmt]]:
    for node in tree.body:
        if isinstance(node, ast.ClassDef):
            yield node.name, "class", node
            for item in node.body:
                if isinstance(item, _DEFS):
                    yield f"{node.name}.{item.name}", "method", item
        elif isinstance(node, _DEFS):
            yield node.name, "function", node


def _import_group(node: ast.stmt) -> int:
    module = node.module if isinstance(node, ast.ImportFrom) else node.names[0].name
    if module == "__future__":
        return 0
    if isinstance(node, ast.ImportFrom) and node.level:
        return 3
    if (module or "").split(".")[0] in sys.stdlib_module_names:
        return 1
    return 2


def _import_key(node: ast.stmt) -> tuple[int, int, str]:
    if isinstance(node, ast.ImportFrom):
        return _import_group(node), 1, ("." * node.level + (node.module or "")).lower()
    return _import_group(node), 0, node.names[0].name.lower()


class PythonEditor(CodeEditor):
    language = "python"
    extensions = (".py", ".pyi")

    def _finish(self, lines: list[str]) -> str:
        result = "".join(lines)
        _parse(result, "result")
        return result

    def list_structure(self, source: str) -> str:
        tree = _parse(source)
        out: list[str] = []
        imports = [ast.unparse(node) for node in tree.body if isinstance(node, _IMPORTS)]
        if imports:
            out.append("Imports:")
            out.extend(f"  {statement}" for statement in imports)
        classes = [node for node in tree.body if isinstance(node, ast.ClassDef)]
        if classes:
            out.append("Classes:")
        for cls in classes:
            bases = ", ".join(ast.unparse(base) for base in cls.bases)
            header = f"class {cls.name}({bases})" if bases else f"class {cls.name}"
            out.append(f"  {header} [lines {cls.lineno}-{cls.end_lineno}]")
            for item in cls.body:
                if isinstance(item, _DEFS):
                    out.append(
                        f"    def {item.name}({ast.unparse(item.args)}) "
                        f"[lines {item.lineno}-{item.end_lineno}]"
                    )
                elif isinstance(item, ast.AnnAssign) and isinstance(item.target, ast.Name):
                    out.append(f"    {item.target.id}: {ast.unparse(item.annotation)}")
                elif isinstance(item, ast.Assign):
                    for target in item.targets:
                        if isinstance(target, ast.Name):
                            out.append(f"    {target.id} = ...")
        functions = [node for node in tree.body if isinstance(node, _DEFS)]
        if functions:
            out.append("Functions:")
        for func in functions:
            out.append(
                f"  def {func.name}({ast.unparse(func.args)}) "
                f"[lines {func.lineno}-{func.end_lineno}]"
            )
        return "\n".join(out) or "(no top-level definitions)"

    def search(self, source: str, pattern: str) -> str:
        if not pattern:
            raise ValueError("search_ast requires a pattern.")
        tree = _parse(source)
        hits = [
            f"{kind} {qualified} [lines {node.lineno}-{node.end_lineno}]"
            for qualified, kind, node in _definitions(tree)
            if fnmatch.fnmatchcase(qualified, pattern)
            or fnmatch.fnmatchcase(qualified.rsplit(".", 1)[-1], pattern)
        ]
        return "\n".join(hits) if hits else f"No definitions match '{pattern}'."

    def add_class(
        self,
        source: str,
        class_name: str,
        extends_class: str | None = None,
        implements: list[str] | None = None,
    ) -> str:
        tree = _parse(source)
        if _has_def(tree.body, class_name):
            raise ValueError(f"'{class_name}' is already defined.")
        bases = [base for base in [extends_class, *(implements or [])] if base]
        header = f"class {class_name}({', '.join(bases)}):" if bases else f"class {class_name}:"
        newline = _newline(source)
        lines = _lines(source)
        _append_top_level(lines, [header + newline, "    pass" + newline], newline)
        return self._finish(lines)

    def _insert_into_class(
        self, source: str, cls: ast.ClassDef, code: str, at_top: bool = False
    ) -> str:
        newline = _newline(source)
        lines = _lines(source)
        indent = _body_indent(cls, lines)
        block = _block(code, indent, newline)
        body = cls.body
        if len(body) == 1 and isinstance(body[0], ast.Pass):
            lines[body[0].lineno - 1 : body[0].end_lineno] = block
            return self._finish(lines)
        if at_top:
            leading = []
            for node in body:
                if isinstance(node, _DEFS + (ast.ClassDef,)):
                    break
                leading.append(node)
            if leading:
                end = leading[-1].end_lineno or leading[-1].lineno
                lines[end:end] = block
            else:
                start = _start(body[0]) - 1
                lines[start:start] = block + [newline]
            return self._finish(lines)
        end = cls.end_lineno or cls.lineno
        _terminate(lines, newline)
        lines[end:end] = [newline] + block
        return self._finish(lines)

    def add_method(self, source: str, class_name: str, method_code: str) -> str:
        method = _single_definition(method_code, _DEFS, "method_code")
        tree = _parse(source)
        cls = _find_class(tree, class_name)
        if _has_def(cls.body, method.name):
            raise ValueError(f"Method '{method.name}' already exists in {class_name}.")
        return self._insert_into_class(source, cls, method_code)

    def modify_method(
        self,
        source: str,
        class_name: str,
        method_name: str,
        method_code: str | None = None,
        new_body: str | None = None,
    ) -> str:
        tree = _parse(source)
        cls = _find_class(tree, class_name)
        method = _find_def(cls.body, method_name, f"class {class_name}")
        newline = _newline(source)
        lines = _lines(source)
        if method_code:
            _single_definition(method_code, _DEFS, "method_code")
            indent = _indent_of(lines[method.lineno - 1])
            lines[_start(method) - 1 : method.end_lineno] = _block(method_code, indent, newline)
        elif new_body:
            first = method.body[0]
            if first.lineno == method.lineno:
                raise ValueError(
                    f"'{method_name}' is a one-line definition; supply method_code instead."
                )
            indent = _indent_of(lines[first.lineno - 1])
            lines[first.lineno - 1 : method.end_lineno] = _block(new_body, indent, newline)
        else:
            raise ValueError("ast_modify_method requires method_code or new_body.")
        return self._finish(lines)

    def _remove_from_class(self, source: str, cls: ast.ClassDef, nodes: list[ast.stmt]) -> str:
        newline = _newline(source)
        lines = _lines(source)
        if len(nodes) == len(cls.body):
            indent = _body_indent(cls, lines)
            lines[_start(cls.body[0]) - 1 : cls.end_lineno] = [indent + "pass" + newline]
            return self._finish(lines)
        for node in sorted(nodes, key=_start, reverse=True):
            _delete_span(lines, _start(node), node.end_lineno or node.lineno)
        return self._finish(lines)

    def remove_method(self, source: str, class_name: str, method_name: str) -> str:
        tree = _parse(source)
        cls = _find_class(tree, class_name)
        method = _find_def(cls.body, method_name, f"class {class_name}")
        return self._remove_from_class(source, cls, [method])

    def add_property(self, source: str, class_name: str, property_code: str) -> str:
        snippet = _parse(textwrap.dedent(property_code), "property_code")
        if not snippet.body:
            raise ValueError("property_code is empty.")
        tree = _parse(source)
        cls = _find_class(tree, class_name)
        is_accessor = any(isinstance(node, _DEFS) for node in snippet.body)
        return self._insert_into_class(source, cls, property_code, at_top=not is_accessor)

    def remove_property(self, source: str, class_name: str, property_name: str) -> str:
        tree = _parse(source)
        cls = _find_class(tree, class_name)
        matches: list[ast.stmt] = []
        for node in cls.body:
            if isinstance(node, ast.Assign):
                names = [t.id for t in node.targets if isinstance(t, ast.Name)]
                if property_name in names:
                    matches.append(node)
            elif isinstance(node, ast.AnnAssign):
                if isinstance(node.target, ast.Name) and node.target.id == property_name:
                    matches.append(node)
            elif isinstance(node, _DEFS) and node.name == property_name:
                matches.append(node)
        if not matches:
            raise ValueError(f"Property '{property_name}' not found in {class_name}.")
        return self._remove_from_class(source, cls, matches)

    def add_decorator(
        self,
        source: str,
        decorator_code: str,
        *,
        class_name: str | None = None,
        function_name: str | None = None,
    ) -> str:
        decorator = decorator_code.strip()
        if not decorator.startswith("@"):
            decorator = "@" + decorator
        _parse(f"{decorator}\ndef _decorated():\n    pass\n", "decorator_code")
        tree = _parse(source)
        if class_name and function_name:
            target = _find_def(_find_class(tree, class_name).body, function_name, class_name)
        elif function_name:
            target = _find_def(tree.body, function_name, "module")
        elif class_name:
            target = _find_class(tree, class_name)
        else:
            raise ValueError("ast_add_decorator requires a class or function name.")
        existing = {ast.unparse(node) for node in target.decorator_list}
        if decorator[1:].strip() in existing:
            raise ValueError(f"{decorator} is already applied.")
        newline = _newline(source)
        lines = _lines(source)
        indent = _indent_of(lines[target.lineno - 1])
        index = _start(target) - 1
        lines[index:index] = [indent + decorator + newline]
        return self._finish(lines)

    def add_type_alias(self, source: str, type_code: str) -> str:
        snippet = _parse(textwrap.dedent(type_code), "type_code")
        if not snippet.body or any(isinstance(node, _DEFS + (ast.ClassDef,)) for node in snippet.body):
            raise ValueError("type_code must contain only assignments.")
        tree = _parse(source)
        newline = _newline(source)
        lines = _lines(source)
        block = _block(type_code, "", newline)
        imports = [node for node in tree.body if isinstance(node, _IMPORTS)]
        index = (imports[-1].end_lineno or 0) if imports else _header_end(tree, lines)
        _terminate(lines, newline)
        padding = [newline] if index else []
        trailing = [newline] if index < len(lines) and lines[index].strip() else []
        lines[index:index] = padding + block + trailing
        return self._finish(lines)

    def add_function(self, source: str, function_code: str) -> str:
        func = _single_definition(function_code, _DEFS, "function_code")
        tree = _parse(source)
        if _has_def(tree.body, func.name):
            raise ValueError(f"'{func.name}' is already defined.")
        newline = _newline(source)
        lines = _lines(source)
        _append_top_level(lines, _block(function_code, "", newline), newline)
        return self._finish(lines)

    def remove_function(self, source: str, function_name: str) -> str:
        tree = _parse(source)
        func = _find_def(tree.body, function_name, "module")
        lines = _lines(source)
        _delete_span(lines, _start(func), func.end_lineno or func.lineno)
        return self._finish(lines)

    def add_import(self, source: str, import_statement: str) -> str:
        snippet = _parse(import_statement.strip(), "import_statement")
        if not snippet.body or not all(isinstance(node, _IMPORTS) for node in snippet.body):
            raise ValueError("import_statement must contain only import statements.")
        tree = _parse(source)
        imports = [node for node in tree.body if isinstance(node, _IMPORTS)]
        present = {ast.dump(node) for node in imports}
        missing = [node for node in snippet.body if ast.dump(node) not in present]
        if not missing:
            return source
        newline = _newline(source)
        lines = _lines(source)
        _terminate(lines, newline)
        header = _header_end(tree, lines)
        futures = [node for node in imports if _import_group(node) == 0]
        for node in missing:
            text = ast.unparse(node) + newline
            if _import_group(node) == 0:
                index = (futures[-1].end_lineno or header) if futures else header
            elif imports:
                index = max(node.end_lineno or 0 for node in imports)
            else:
                index = header
            block = [text]
            if not imports and index < len(lines) and lines[index].strip():
                block.append(newline)
            lines[index:index] = block
            tree = _parse("".join(lines))
            imports = [item for item in tree.body if isinstance(item, _IMPORTS)]
            futures = [item for item in imports if _import_group(item) == 0]
        return self._finish(lines)

    def remove_import(
        self, source: str, import_statement: str | None = None, module_path: str | None = None
    ) -> str:
        if not import_statement and not module_path:
            raise ValueError("ast_remove_import requires import_statement or module_path.")
        tree = _parse(source)
        newline = _newline(source)
        lines = _lines(source)
        targets: set[str] = set()
        if import_statement:
            snippet = _parse(import_statement.strip(), "import_statement")
            targets = {ast.dump(node) for node in snippet.body}
        changed = False
        for node in reversed([n for n in tree.body if isinstance(n, _IMPORTS)]):
            start, end = node.lineno, node.end_lineno or node.lineno
            if ast.dump(node) in targets:
                del lines[start - 1 : end]
                changed = True
            elif module_path and isinstance(node, ast.ImportFrom) and node.module == module_path:
                del lines[start - 1 : end]
                changed = True
            elif module_path and isinstance(node, ast.Import):
                kept = [alias for alias in node.names if alias.name != module_path]
                if len(kept) == len(node.names):
                    continue
                indent = _indent_of(lines[start - 1])
                replacement = (
                    [indent + ast.unparse(ast.Import(names=kept)) + newline] if kept else []
                )
                lines[start - 1 : end] = replacement
                changed = True
        if not changed:
            raise ValueError(f"Import not found: {import_statement or module_path}")
        return self._finish(lines)

    def organize_imports(self, source: str) -> str:
        tree = _parse(source)
        block: list[ast.stmt] = []
        for node in tree.body:
            if isinstance(node, _IMPORTS):
                block.append(node)
            elif block:
                break
        if not block:
            return source
        lines = _lines(source)
        first, last = block[0].lineno, block[-1].end_lineno or block[-1].lineno
        covered = set()
        for node in block:
            covered.update(range(node.lineno, (node.end_lineno or node.lineno) + 1))
        for number in range(first, last + 1):
            if number not in covered and lines[number - 1].strip():
                raise ValueError(f"Line {number} interrupts the import block; organize it manually.")
        newline = _newline(source)
        ordered: list[str] = []
        seen: set[str] = set()
        group = None
        for node in sorted(block, key=_import_key):
            text = ast.unparse(node)
            if text in seen:
                continue
            seen.add(text)
            if group is not None and _import_group(node) != group:
                ordered.append(newline)
            group = _import_group(node)
            ordered.append(text + newline)
        _terminate(lines, newline)
        lines[first - 1 : last] = ordered
        return self._finish(lines)
