import re
from typing import Iterator, NamedTuple, Optional, Tuple

HUNK_HEADER_RE = re.compile(r"^@@\s+-\d+(?:,\d+)?\s+\+(\d+)(?:,\d+)?\s+@@")

ADDED = "added"
REMOVED = "removed"
CONTEXT = "context"


class DiffLine(NamedTuple):
    """One body line of a unified diff.

    `line_number` is the line's position in the new version of the file, and is
    None for removed lines since they do not exist there.
    """

    line_number: Optional[int]
    content: str
    kind: str


def walk_patch(patch: str) -> Iterator[DiffLine]:
    """
    Walks a unified diff patch for a single file, tracking new-file line numbers.

    Hunk headers reset the counter to the new-file start of the hunk and are not
    emitted. Added and context lines advance the counter, removed lines do not.
    Anything before the first hunk header (the `---`/`+++` file headers) and
    `\\ No newline at end of file` markers are skipped.
    """
    line_number = 0
    in_hunk = False

    for raw_line in patch.split("\n"):
        if raw_line.startswith("@@"):
            match = HUNK_HEADER_RE.match(raw_line)
            if match:
                line_number = int(match.group(1))
                in_hunk = True
            continue

        # file headers only precede the first hunk
        if not in_hunk:
            continue

        if raw_line.startswith("\\"):
            continue

        if raw_line.startswith("+"):
            yield DiffLine(line_number, raw_line[1:], ADDED)
            line_number += 1
        elif raw_line.startswith("-"):
            yield DiffLine(None, raw_line[1:], REMOVED)
        else:
            yield DiffLine(line_number, raw_line[1:], CONTEXT)
            line_number += 1


def added_lines(patch: str) -> Iterator[Tuple[int, str]]:
    """Yields (new-file line number, content) for every added line of a patch"""
    for diff_line in walk_patch(patch):
        if diff_line.kind == ADDED:
            yield diff_line.line_number, diff_line.content
