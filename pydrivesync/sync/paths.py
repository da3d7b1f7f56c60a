"""Conversion between vault paths and paths relative to a sync scope."""


def relative_path(full_path: str, base_path: str) -> str:
    """Strip the scope's base folder from a vault path.

    Args:
        full_path: Path relative to the vault root (e.g. "notes/a.md")
        base_path: Base folder of the sync scope ("" for the whole vault)

    Returns:
        Path relative to base_path. Paths outside base_path are returned
        unchanged.

    Examples:
        >>> relative_path("notes/daily/a.md", "notes")
        'daily/a.md'
        >>> relative_path("notes", "notes")
        ''
        >>> relative_path("other/a.md", "notes")
        'other/a.md'
    """
    if not base_path:
        return full_path
    if full_path == base_path:
        return ""
    prefix = base_path + "/"
    if full_path.startswith(prefix):
        return full_path[len(prefix) :]
    return full_path


def join_path(base_path: str, rel_path: str) -> str:
    """Inverse of relative_path: re-prefix a relative path with base_path."""
    if not base_path:
        return rel_path
    if not rel_path:
        return base_path
    return f"{base_path}/{rel_path}"


def join_folder_chain(relative_folder_path: str) -> list[str]:
    """Split a folder path into its segment names, dropping empty segments.

    Examples:
        >>> join_folder_chain("a//b/c/")
        ['a', 'b', 'c']
    """
    return [segment for segment in relative_folder_path.split("/") if segment]


def split_parent(path: str) -> tuple[str, str]:
    """Split "a/b/c.md" into ("a/b", "c.md")."""
    if "/" not in path:
        return "", path
    parent, name = path.rsplit("/", 1)
    return parent, name


def folder_prefixes(relative_folder_path: str) -> list[str]:
    """Return every ancestor prefix of a folder path, shallowest first.

    Examples:
        >>> folder_prefixes("a/b/c")
        ['a', 'a/b', 'a/b/c']
    """
    segments = join_folder_chain(relative_folder_path)
    return ["/".join(segments[: i + 1]) for i in range(len(segments))]


def is_within(path: str, folder: str) -> bool:
    """Check whether path is folder itself or lies below it."""
    if not folder:
        return True
    return path == folder or path.startswith(folder + "/")
