"""System prompt composition for the coding assistant.

Pure functions: the same current file always yields the same prompt.
"""

from __future__ import annotations

import json

from ..models import CurrentFile
from ..tools import ToolName

_PATCH_TOOL = ToolName.EDIT_FILE_WITH_PATCH.value

GENERIC_PROMPT = (
    "You are an AI coding assistant. Help the user with their coding questions. "
    f"When you need to suggest code changes, use the {_PATCH_TOOL} tool."
)


def _example_call(path: str) -> str:
    example = {
        "path": path,
        "diff": (
            f"--- {path}\n+++ {path}\n@@ -10,3 +10,3 @@\n"
            " function test() {\n-  return false;\n+  return true;\n }"
        ),
        "explanation": "Changed return value from false to true to fix the logic",
    }
    return json.dumps(example, indent=2)


def compose_system_prompt(current_file: CurrentFile | None = None) -> str:
    if current_file is None:
        return GENERIC_PROMPT

    path = current_file.path
    return f"""\
You are an AI coding assistant integrated into a code editor, similar to Cursor AI.

Current file being edited:
- Path: {path}
- Content:
```
{current_file.content}
```

When suggesting code changes, you MUST use the {_PATCH_TOOL} tool:
1. Call {_PATCH_TOOL} with the file path, diff patch, and explanation
2. The diff should be in unified diff format with:
   - File paths (--- and +++)
   - Hunk headers (@@ -start,count +start,count @@)
   - Context lines (starting with space)
   - Removed lines (starting with -)
   - Added lines (starting with +)
3. Include at least 3 lines of context before and after changes
4. Provide a clear explanation of what you're changing and why

Example tool call:
{_example_call(path)}

The user can then accept or reject your suggested changes in the UI."""
