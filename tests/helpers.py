from __future__ import annotations

from dataclasses import replace
import json
import os
from pathlib import Path
import stat
import sys
from typing import AsyncIterator, Sequence, Union
import uuid

import fitz

from pdf_tools_api.settings import Settings

FilePart = tuple[str, bytes, str]
FormPart = tuple[str, Union[str, FilePart]]


def make_settings(**overrides) -> Settings:
    settings = Settings(
        app_name="PDF Tools",
        username="admin",
        password="correct horse",
        session_secret="test-session-secret",
    )
    return replace(settings, **overrides)


def make_pdf(pages: int = 1, label: str = "doc") -> bytes:
    document = fitz.open()
    for index in range(pages):
        page = document.new_page()
        page.insert_text((72, 72), f"{label} page {index + 1}")
    payload = document.tobytes()
    document.close()
    return payload


def fake_pdf(pages: int, label: str = "doc") -> bytes:
    """Minimal bytes the fake qpdf understands: PDF magic plus a page marker."""
    return f"%PDF-1.4\n% label={label} pages={pages}\n%%EOF\n".encode("ascii")


def encode_multipart(
    parts: Sequence[FormPart], boundary: str | None = None
) -> tuple[str, bytes]:
    boundary = boundary or f"----pdftools{uuid.uuid4().hex}"
    chunks: list[bytes] = []
    for name, value in parts:
        chunks.append(f"--{boundary}\r\n".encode("ascii"))
        if isinstance(value, tuple):
            filename, payload, content_type = value
            chunks.append(
                (
                    f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                    f"Content-Type: {content_type}\r\n\r\n"
                ).encode("utf-8")
            )
            chunks.append(payload)
        else:
            chunks.append(
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8")
            )
            chunks.append(value.encode("utf-8"))
        chunks.append(b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("ascii"))
    return f"multipart/form-data; boundary={boundary}", b"".join(chunks)


async def stream_bytes(body: bytes, chunk_size: int = 97) -> AsyncIterator[bytes]:
    for offset in range(0, len(body), chunk_size):
        yield body[offset : offset + chunk_size]


_FAKE_QPDF = """#!{python}
import json, re, shutil, sys
args = sys.argv[1:]
with open({log!r}, "a", encoding="utf-8") as log:
    log.write(json.dumps(["qpdf", *args]) + "\\n")
if args[0] == "--show-npages":
    data = open(args[1], "rb").read()
    match = re.search(rb"pages=(\\d+)", data)
    print(match.group(1).decode() if match else "0")
elif args[0] == "--empty":
    output = args[args.index("--") + 1]
    refs = args[2:args.index("--")]
    with open(output, "wb") as handle:
        handle.write(b"%PDF-assembled\\n")
        for path, page in zip(refs[::2], refs[1::2]):
            label = re.search(rb"label=(\\S+)", open(path, "rb").read()).group(1)
            handle.write(label + b":" + page.encode() + b"\\n")
elif args[0] == "--linearize":
    with open(args[2], "wb") as handle:
        handle.write(b"%PDF-linearized\\n" + open(args[1], "rb").read())
else:
    sys.exit(2)
"""

_FAKE_GS = """#!{python}
import json, sys
args = sys.argv[1:]
with open({log!r}, "a", encoding="utf-8") as log:
    log.write(json.dumps(["gs", *args]) + "\\n")
output = next(arg.split("=", 1)[1] for arg in args if arg.startswith("-sOutputFile="))
inputs = [arg for arg in args if not arg.startswith("-")]
with open(output, "wb") as handle:
    handle.write(b"%PDF-gs\\n")
    for path in inputs:
        handle.write(open(path, "rb").read())
"""


def _write_script(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class FakeTools:
    """Executable stand-ins for qpdf and gs that record every invocation."""

    def __init__(self, directory: Path) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        self.log_path = directory / "calls.jsonl"
        self.qpdf = _write_script(
            directory / "qpdf",
            _FAKE_QPDF.format(python=sys.executable, log=os.fspath(self.log_path)),
        )
        self.gs = _write_script(
            directory / "gs",
            _FAKE_GS.format(python=sys.executable, log=os.fspath(self.log_path)),
        )

    def calls(self) -> list[list[str]]:
        if not self.log_path.exists():
            return []
        return [
            json.loads(line)
            for line in self.log_path.read_text(encoding="utf-8").splitlines()
            if line
        ]

    def settings(self, **overrides) -> Settings:
        return make_settings(
            qpdf_binary=os.fspath(self.qpdf),
            ghostscript_binary=os.fspath(self.gs),
            tool_timeout_seconds=30.0,
            **overrides,
        )
