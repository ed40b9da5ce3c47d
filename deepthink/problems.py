"""Problem files: markdown body with optional YAML frontmatter run settings."""

from pathlib import Path
from typing import Any

import frontmatter

_KNOWN_KEYS = {
    "mode",
    "agents",
    "max_iterations",
    "required_verifications",
    "max_errors",
    "instructions",
    "web_search",
}


def parse_problem_file(file_path: Path) -> tuple[str, dict[str, Any]]:
    """Parse a problem file with optional YAML frontmatter.

    Returns:
        (problem, metadata) where problem is the body text and metadata holds
        the recognised keys: mode ("deep"/"ultra"), agents (int),
        max_iterations (int), required_verifications (int), max_errors (int),
        instructions (list[str]), web_search (bool). Unknown keys are dropped.
        If no frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    problem = post.content.strip()
    metadata = {k: v for k, v in post.metadata.items() if k in _KNOWN_KEYS}
    instructions = metadata.get("instructions")
    if isinstance(instructions, str):
        metadata["instructions"] = [instructions]
    return problem, metadata
