import hashlib

from extclip.config import DATA_DIR


def compute_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def normalize_clip_text(text: str) -> str:
    """Collapse OS-specific line endings and surrounding whitespace.

    Pasteboards on some platforms rewrite ``\\r\\n`` or append a trailing
    newline when text is written, so the echo of a self-copy may not be
    byte-identical to what was written.
    """
    return "\n".join(text.splitlines()).strip()


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def clip_menu_title(content: str, from_app_name: str | None, max_len: int) -> str:
    preview = truncate_text(content, max_len)
    if from_app_name:
        return f"{preview}  ({from_app_name})"
    return preview
