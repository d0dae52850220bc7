"""System prompt construction.

Operation examples are rendered with the same serializer the parser reads,
so the documented format cannot drift from the accepted one.
"""

from aiplan.application.delimiters import end_delimiter, format_operation_block, start_delimiter
from aiplan.domain.models.operation import (
    CreateOperation,
    DeleteOperation,
    EditOperation,
    ListDirectoryOperation,
    MoveOperation,
    ReadFileOperation,
    ResponseOperation,
    SearchContentOperation,
)


OPERATION_EXAMPLES = [
    (
        "Answer questions, explain, or ask for clarification. Does not modify files. Markdown is supported.",
        ResponseOperation(comment="Optional note", content="**Your Markdown answer.**"),
    ),
    (
        "Create a new file, creating missing directories. Never use it on an existing file; use edit instead.",
        CreateOperation(
            file_path="path/to/new_file.jsx",
            comment="Create a new React component.",
            content="const NewComponent = () => <div>Hello World</div>",
        ),
    ),
    (
        "Edit an existing file. Without find the whole file is overwritten. With find, the text must "
        "occur exactly once in the current file and is replaced by content. Wildcards, regular "
        "expressions and line numbers are not supported in find.",
        EditOperation(
            file_path="path/to/file.jsx",
            comment="Fix a typo in the component.",
            find="const NewComponent = () => <div>Helo World</div>",
            content="const NewComponent = () => <div>Hello World</div>",
        ),
    ),
    (
        "Move or rename an existing file.",
        MoveOperation(old_path="path/to/old.ts", new_path="path/to/new.ts", comment="Move the file."),
    ),
    (
        "Delete an existing file.",
        DeleteOperation(file_path="path/to/delete.ts", comment="Remove an unused file."),
    ),
]

CONTEXT_EXAMPLES = [
    ("list_directory: list a directory to learn the project layout", ListDirectoryOperation(path="src", recursive=True, max_depth=2)),
    ("search_content: search file contents for specific code", SearchContentOperation(path="src", pattern="def main", file_pattern="**/*.py")),
    ("read_file: read a file, optionally a 1-based line range", ReadFileOperation(path="src/app.py", start=1, end=40)),
]


def describe_operations() -> str:
    parts = []
    for index, (description, example) in enumerate(OPERATION_EXAMPLES, start=1):
        parts.append(f"{index}. {example.type}\n{description}\n\nExample:\n{format_operation_block(example)}")
    return "\n\n".join(parts)


def describe_context_operations() -> str:
    return "\n\n".join(
        f"- {description}\n{format_operation_block(example)}" for description, example in CONTEXT_EXAMPLES
    )


def construct_system_prompt(extra_instructions: str | None = None) -> str:
    """Build the full system prompt: role, grammar, operations and practices."""
    prompt = f"""Role: aiplan, a lightweight file-operation assistant.

Task: analyze the user request and answer with a sequence of operation blocks.

Core rules:
- Every operation block is enclosed by the lines `{start_delimiter()}` and `{end_delimiter()}`, each on its own line.
- Single-line parameters use the form `name: value`.
- Multi-line parameters are enclosed by `{start_delimiter('name')}` and `{end_delimiter('name')}` lines.
- Output only operation blocks, no other text.

Operations:
{describe_operations()}

Format requirements:
- Every block and multi-line parameter must be closed correctly, otherwise it cannot be parsed.
- File paths should be complete absolute paths.
- If a multi-line value contains a line starting with "--- " or ending with " ---", add a backslash at the start or end of that line (for example "\\--- content end ---"). The backslash is removed when the operation is applied.

File context:
The user may provide FILE blocks in this format:
{start_delimiter('FILE')}
{start_delimiter('metadata')}
path: <file path>
range: <X-Y>  (optional)
comment: <note>  (optional)
{end_delimiter('metadata')}
{start_delimiter('content')}
<file content>
{end_delimiter('content')}
{end_delimiter('FILE')}

Information gathering:
If you need more information, use these operations. They run automatically and their results are sent back to you, after which you can output the actual file operations.
{describe_context_operations()}

Best practices:
- Gather missing information first, then modify files.
- Keep operations short and precise; overwrite a whole file instead of repeating it in find.
- Never let several edits of one file overlap.
- Give every file operation a short comment.
- Use a response operation for long explanations instead of code comments.
- Follow any plans, specifications or examples present in the file context.

Now analyze the user request and produce the operations."""
    if extra_instructions:
        prompt += f"\n\nAdditional instructions:\n{extra_instructions}"
    return prompt
