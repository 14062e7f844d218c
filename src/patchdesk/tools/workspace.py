"""Workspace tools executed by the caller's environment.

These are declared to the model only. The server relays the call and the
caller supplies the result in a later request.
"""

from __future__ import annotations

from pydantic import Field

from . import ToolInput, ToolName, ToolSpec


class ListFilesInput(ToolInput):
    path: str = Field(description="The path to list files from")


class ReadFileInput(ToolInput):
    path: str = Field(description="The path to read the file from")


class CreateFileInput(ToolInput):
    path: str = Field(description="The path to create the file at")
    content: str = Field(description="The content of the file")


class CreateFolderInput(ToolInput):
    path: str = Field(description="The path to create the folder at")


class RunCommandInput(ToolInput):
    command: str = Field(description="The command to run")
    cwd: str | None = Field(default=None, description="The working directory to run the command in")
    output_limit: int = Field(
        default=1000,
        ge=1,
        alias="outputLimit",
        description="The maximum number of characters to return in the output",
    )


SPECS: list[ToolSpec] = [
    ToolSpec(
        name=ToolName.LIST_FILES,
        description="List files in a directory",
        input_model=ListFilesInput,
    ),
    ToolSpec(
        name=ToolName.READ_FILE,
        description="Read a file",
        input_model=ReadFileInput,
    ),
    ToolSpec(
        name=ToolName.CREATE_FILE,
        description="Create a file",
        input_model=CreateFileInput,
    ),
    ToolSpec(
        name=ToolName.CREATE_FOLDER,
        description="Create a folder",
        input_model=CreateFolderInput,
    ),
    ToolSpec(
        name=ToolName.RUN_COMMAND,
        description="Run a command",
        input_model=RunCommandInput,
        output_schema={
            "type": "string",
            "description": "The output of the command (sliced to the outputLimit)",
        },
    ),
]
