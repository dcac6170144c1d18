from .filename import attachment_filename, content_disposition, sanitize_filename

__all__ = ["attachment_filename", "content_disposition", "sanitize_filename"]
