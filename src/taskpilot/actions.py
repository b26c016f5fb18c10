"""Action protocol exchanged with the remote agent."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

AST_READ_KINDS = ("ast_list_structure", "search_ast")
AST_WRITE_KINDS = (
    "ast_add_method",
    "ast_modify_method",
    "ast_remove_method",
    "ast_add_class",
    "ast_add_property",
    "ast_remove_property",
    "ast_add_decorator",
    "ast_add_interface",
    "ast_add_type_alias",
    "ast_add_function",
    "ast_remove_function",
    "ast_add_import",
    "ast_remove_import",
    "ast_organize_imports",
    "modify_ast",
)
AstKind = Literal[
    "ast_list_structure",
    "search_ast",
    "ast_add_method",
    "ast_modify_method",
    "ast_remove_method",
    "ast_add_class",
    "ast_add_property",
    "ast_remove_property",
    "ast_add_decorator",
    "ast_add_interface",
    "ast_add_type_alias",
    "ast_add_function",
    "ast_remove_function",
    "ast_add_import",
    "ast_remove_import",
    "ast_organize_imports",
    "modify_ast",
]


class _ActionBase(BaseModel):
    # Models emit every field of the flat legacy schema, mostly as null.
    model_config = ConfigDict(extra="ignore")


class TalkAction(_ActionBase):
    type: Literal["talk_with_user"]
    content: str | None = None


class ReadFileAction(_ActionBase):
    type: Literal["read_file"]
    path: str | None = None


class ListFilesAction(_ActionBase):
    type: Literal["list_files"]
    path: str | None = None


class SearchFileAction(_ActionBase):
    type: Literal["search_file"]
    path: str | None = None


class RunCommandAction(_ActionBase):
    type: Literal["run_command"]
    command: str | None = None


class CreateFileAction(_ActionBase):
    type: Literal["create_file"]
    path: str | None = None
    content: str | None = None


class ModifyFileAction(_ActionBase):
    type: Literal["modify_file"]
    path: str | None = None
    content: str | None = None
    target_content: str | None = None
    line_range: list[int] | None = None
    confirmed: bool | None = None


class DeleteFileAction(_ActionBase):
    type: Literal["delete_file"]
    path: str | None = None


class AstEditAction(_ActionBase):
    type: AstKind
    path: str | None = None
    file_path: str | None = None
    pattern: str | None = None
    fix: str | None = None
    language: str | None = None
    class_name: str | None = None
    method_name: str | None = None
    method_code: str | None = None
    property_name: str | None = None
    property_code: str | None = None
    extends_class: str | None = None
    implements_interfaces: list[str] | None = None
    decorator_code: str | None = None
    interface_code: str | None = None
    type_code: str | None = None
    function_name: str | None = None
    function_code: str | None = None
    import_statement: str | None = None
    module_path: str | None = None
    new_body: str | None = None

    @property
    def target_path(self) -> str:
        return self.path or self.file_path or ""

    @property
    def mutates(self) -> bool:
        return self.type in AST_WRITE_KINDS


class UseToolAction(_ActionBase):
    type: Literal["use_mcp_tool"]
    tool_name: str | None = None
    tool_args: str | None = None


Action = Annotated[
    Union[
        TalkAction,
        ReadFileAction,
        ListFilesAction,
        SearchFileAction,
        RunCommandAction,
        CreateFileAction,
        ModifyFileAction,
        DeleteFileAction,
        AstEditAction,
        UseToolAction,
    ],
    Field(discriminator="type"),
]

FILE_WRITE_ACTIONS = (CreateFileAction, ModifyFileAction, DeleteFileAction)


class AgentResponse(BaseModel):
    """Normalized agent turn. ``actions`` is never empty once parsed."""

    model_config = ConfigDict(extra="ignore")

    actions: list[Action] = Field(min_length=1)
    summary: str | None = None
    message: str | None = None
    conversation_id: str | None = None


_action_adapter: TypeAdapter[Any] = TypeAdapter(Action)


def parse_action(payload: dict[str, Any]) -> Any:
    """Validate a single action mapping into its typed variant."""
    return _action_adapter.validate_python(payload)


def talk(content: str) -> TalkAction:
    return TalkAction(type="talk_with_user", content=content)
