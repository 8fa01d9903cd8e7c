"""ZIP export and import of a project's files."""
import io
import re
import zipfile


class ArchiveError(Exception):
    """Raised when an uploaded file is not a readable ZIP archive."""


def export_project_zip(file_contents: dict[str, str]) -> bytes:
    """Writes one entry per path; folders are implied by the path separators."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path, content in file_contents.items():
            zf.writestr(path, content)
    return buffer.getvalue()


def import_project_zip(data: bytes) -> dict[str, str]:
    """Reads every file entry back into a path -> content mapping."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return {
                info.filename: zf.read(info).decode("utf-8", errors="replace")
                for info in zf.infolist()
                if not info.is_dir()
            }
    except zipfile.BadZipFile as e:
        raise ArchiveError("Failed to read the ZIP file. Please make sure it is a valid archive.") from e


def archive_filename(prompt: str) -> str:
    """Names the download after the start of the prompt."""
    stem = re.sub(r"[\s/]", "-", prompt[:30]) or "project"
    return f"{stem}.zip"
