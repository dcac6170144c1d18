import re
import unicodedata

DEFAULT_TITLE = "video"


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """
    Sanitize a title for use in a Content-Disposition filename.

    The result is pure printable ASCII so it can always be encoded as a
    latin-1 HTTP header value. Non-ASCII characters are dropped, not
    transliterated.
    """
    name = unicodedata.normalize("NFKC", name)
    name = re.sub(r'[^\x20-\x7E]', '', name)
    name = re.sub(r'[\\/:*?"<>|]', '_', name)

    windows_reserved = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }
    if name.upper() in windows_reserved:
        name = f"_{name}"

    return name[:max_length].strip()


def attachment_filename(title: str, ext: str) -> str:
    """Filename for a downloaded title, falling back to DEFAULT_TITLE"""
    base = sanitize_filename(title) or DEFAULT_TITLE
    return f"{base}.{ext}"


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{filename}"'
