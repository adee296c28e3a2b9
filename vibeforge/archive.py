import io, logging, re, zipfile

log = logging.getLogger("archive")

DEFAULT_PROJECT_NAME = "vibeforge-project"


def archive(files) -> bytes:
    """Zip the records in order; a later duplicate name overwrites an earlier one."""
    latest = {}
    for f in files:
        if f.file_name:
            latest[f.file_name.lstrip("/")] = f.code
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, code in latest.items():
            zf.writestr(name, code)
    data = buf.getvalue()
    log.info(f"Archived {len(latest)} file(s) ({len(data)}B)")
    return data


def archive_name(project_name: str = "") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", project_name.lower()).strip("-")[:40]
    return f"{slug or DEFAULT_PROJECT_NAME}.zip"
