import re
from pathlib import Path
from typing import List

# Fence labels for the languages a scaffold can be extracted for.
FENCE_LABELS = {
    ".py": "python",
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".rs": "rust",
}


def fence_label_for(file_name: str) -> str:
    """
    Returns the fenced-block language label for a target file name.

    Unknown extensions map to the bare extension (e.g. 'main.zig' -> 'zig').

    :param file_name: The file the extracted code will be written to.
    :return str: The label expected after the opening fence.
    """
    suffix = Path(file_name).suffix.lower()
    return FENCE_LABELS.get(suffix, suffix.lstrip("."))


def extract_code_blocks(document: str, label: str) -> List[str]:
    """
    Extracts every fenced code block carrying the given language label.

    Blocks are matched non-greedily, in document order, and trimmed of
    leading/trailing whitespace. A fence whose label merely starts with
    `label` (e.g. 'python3' for 'python') does not match.

    :param document: The Markdown source.
    :param label: The language label, e.g. 'python'.
    :return list: The trimmed block contents.
    """
    pattern = re.compile(rf"```{re.escape(label)}[ \t]*\r?\n(.*?)```", re.DOTALL)
    return [match.group(1).strip() for match in pattern.finditer(document)]


def join_code_blocks(blocks: List[str]) -> str:
    """Concatenates code blocks separated by a single blank line."""
    return "\n\n".join(blocks)
