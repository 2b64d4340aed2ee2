"""Utility functions for the swim trends pipeline."""

from pathlib import Path
from typing import List, Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Return a directory path, creating it if it doesn't exist.

    Args:
        path: Directory path

    Returns:
        Path object for the directory
    """
    if isinstance(path, str):
        path = Path(path)

    path.mkdir(parents=True, exist_ok=True)
    return path


def iter_fit_paths(input_path: Union[str, Path]) -> List[Path]:
    """
    Discover FIT files under a path.

    Args:
        input_path: A single .fit file or a directory searched recursively

    Returns:
        Sorted list of FIT file paths (empty when nothing matches)
    """
    if isinstance(input_path, str):
        input_path = Path(input_path)

    if input_path.is_file():
        return [input_path] if input_path.suffix.lower() == ".fit" else []
    if input_path.is_dir():
        return sorted(p for p in input_path.rglob("*") if p.is_file() and p.suffix.lower() == ".fit")
    return []
