from pathlib import Path

# Files that mark the root of a project using devloop
PROJECT_MARKERS = ("devfile.py", ".devloop", "pyproject.toml", ".git")


def get_project_root(start: Path | None = None) -> Path:
    """Get the project root directory.

    Walks up from ``start`` (the working directory by default) to find the
    first directory containing one of the project markers.

    Returns:
        Path to the project root directory
    """
    current = (start or Path.cwd()).resolve()

    for marker in PROJECT_MARKERS:
        for parent in [current, *current.parents]:
            if (parent / marker).exists():
                return parent

    # Fallback to the starting directory
    return current
