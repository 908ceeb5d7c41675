"""Clip Audio API - Upload filename utilities.

Pure string helpers. Nothing here touches the filesystem.
"""

from urllib.parse import quote


def base_filename(filename: str) -> str:
    """Strip any client-supplied directory components.

    Args:
        filename: Filename as sent by the client (may contain / or \\).

    Returns:
        The final path component.
    """
    return filename.replace("\\", "/").rsplit("/", 1)[-1]


def has_extension(filename: str | None, ext: str) -> bool:
    """Check whether a filename ends with an extension (case-insensitive).

    A bare extension such as ".mp4" does not count: there must be a stem.

    Args:
        filename: Filename to check, None allowed.
        ext: Extension with leading dot, e.g. ".mp4".

    Returns:
        True if the filename has a non-empty stem and ends with ext.
    """
    if not filename:
        return False
    name = base_filename(filename)
    return len(name) > len(ext) and name.lower().endswith(ext.lower())


def output_filename(input_filename: str, input_ext: str, output_ext: str) -> str:
    """Derive the download filename by swapping the trailing extension.

    Only the final extension is replaced, so "a.mp4.MP4" becomes "a.mp4.mp3".

    Args:
        input_filename: Uploaded filename.
        input_ext: Extension to remove, e.g. ".mp4".
        output_ext: Extension to append, e.g. ".mp3".

    Returns:
        Base filename with the new extension.
    """
    name = base_filename(input_filename)
    if name.lower().endswith(input_ext.lower()):
        name = name[: -len(input_ext)]
    return f"{name}{output_ext}"


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition header value.

    Header values must be latin-1, so non-ASCII names get an ASCII fallback
    plus an RFC 5987 filename* parameter.
    """
    fallback = "".join(
        ch if 0x20 <= ord(ch) < 0x7F and ch not in '"\\' else "_" for ch in filename
    )
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
