"""Propose a file edit as a unified diff, pending human approval.

The executor only packages its input. Applying the diff is the client's job,
after the user accepts it.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from ..models import PatchProposal
from . import ToolInput, ToolName, ToolSpec

DESCRIPTION = """\
Edit a file by applying a unified diff patch. Use this tool when you want to suggest changes to code files.

The patch should be in unified diff format with:
- File paths (--- and +++)
- Hunk headers (@@ -start,count +start,count @@)
- Context lines (starting with space)
- Removed lines (starting with -)
- Added lines (starting with +)

Include 3+ lines of context before and after changes for accurate patching."""

_DIFF_EXAMPLE = """\
The unified diff patch to apply. Example:
--- /src/app/page.tsx
+++ /src/app/page.tsx
@@ -1,5 +1,5 @@
 export default function Home() {
-  return <div>Hello</div>
+  return <div>Hello World</div>
 }
"""


class EditFileWithPatchInput(ToolInput):
    path: str = Field(description="The file path to edit (e.g., /src/app/page.tsx)")
    diff: str = Field(description=_DIFF_EXAMPLE)
    explanation: str = Field(description="Brief explanation of what changes are being made and why")


def propose_patch(path: str, diff: str, explanation: str) -> PatchProposal:
    return PatchProposal(
        path=path,
        diff=diff,
        explanation=explanation,
        message=f"Suggested edit to {path}: {explanation}",
    )


async def handle(tool_input: EditFileWithPatchInput) -> dict[str, Any]:
    return propose_patch(tool_input.path, tool_input.diff, tool_input.explanation).model_dump()


SPEC = ToolSpec(
    name=ToolName.EDIT_FILE_WITH_PATCH,
    description=DESCRIPTION,
    input_model=EditFileWithPatchInput,
    output_schema=PatchProposal.model_json_schema(),
    executor=handle,
)
