"""Streaming multipart ingestion into a request-scoped scratch directory.

The request body is fed chunk by chunk into ``python_multipart``'s
``MultipartParser``. Its synchronous callbacks only record events; the events
are then handled asynchronously so file writes run in the threadpool and the
event loop is never blocked on disk I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
import logging
from pathlib import Path
from typing import AsyncIterable, BinaryIO
import uuid

from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool

from pdf_tools_api.errors import BadRequestError
from pdf_tools_api.services.pdf_tools import DEFAULT_QUALITY, MAX_QUALITY, MIN_QUALITY
from pdf_tools_api.settings import Settings

LOGGER = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"
SINGLE_FILE_FIELD = "file"
LEGACY_FILES_FIELD = "files"
KEYED_FILE_PREFIX = "file_"
CONTROL_FIELDS = ("quality", "linearize", "layout")
_MULTIPART_ERROR = "Error parsing multipart/form-data request"


class UploadShape(enum.Enum):
    SINGLE = "single"
    MERGE = "merge"


def parse_bool_loose(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "on", "yes"}


def _parse_quality(raw: str) -> int:
    # ASCII digits with an optional sign only.
    text = raw.strip()
    digits = text[1:] if text[:1] in ("+", "-") else text
    if not (digits.isascii() and digits.isdigit()):
        raise BadRequestError("Invalid quality")
    return int(text)


@dataclass(frozen=True)
class MergeOptions:
    quality: int
    linearize: bool
    layout_json: str | None


class FormAccumulator:
    """Collects control fields; the last occurrence of a name wins."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def set(self, name: str, value: str) -> None:
        self._values[name] = value

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def resolve(self) -> MergeOptions:
        quality = DEFAULT_QUALITY
        raw_quality = self._values.get("quality")
        if raw_quality is not None:
            quality = _parse_quality(raw_quality)
        if not MIN_QUALITY <= quality <= MAX_QUALITY:
            raise BadRequestError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}"
            )

        raw_linearize = self._values.get("linearize")
        linearize = parse_bool_loose(raw_linearize) if raw_linearize is not None else False
        return MergeOptions(
            quality=quality,
            linearize=linearize,
            layout_json=self._values.get("layout"),
        )


@dataclass
class IngestedUpload:
    documents: dict[str, Path] = field(default_factory=dict)
    filenames: dict[str, str] = field(default_factory=dict)
    keyed: bool = False
    form: FormAccumulator = field(default_factory=FormAccumulator)

    @property
    def document_count(self) -> int:
        return len(self.documents)


@dataclass
class _PartHeaders:
    field_name: str
    filename: str | None
    content_type: str


@dataclass
class _OpenFilePart:
    doc_id: str
    filename: str
    path: Path
    handle: BinaryIO
    written: int = 0


@dataclass
class _OpenControlPart:
    name: str
    data: bytearray = field(default_factory=bytearray)


def _decode_header(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


class _EventRecorder:
    """Callback sink for ``MultipartParser``; turns parser callbacks into events."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self.finished = False
        self._header_name = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_name.strip().lower()] = self._header_value.strip()
        self._header_name = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        raw_name = options.get(b"name")
        if raw_name is None:
            raise BadRequestError(_MULTIPART_ERROR)
        raw_filename = options.get(b"filename")
        content_type, _ = parse_options_header(self._headers.get(b"content-type", b""))
        self.events.append(
            (
                "headers",
                _PartHeaders(
                    field_name=_decode_header(raw_name),
                    filename=_decode_header(raw_filename) if raw_filename is not None else None,
                    content_type=_decode_header(content_type).strip().lower(),
                ),
            )
        )

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", bytes(data[start:end])))

    def on_part_end(self) -> None:
        self.events.append(("end", None))

    def on_end(self) -> None:
        self.finished = True


def _open_for_write(path: Path) -> BinaryIO:
    return path.open("xb")


def _read_magic(path: Path) -> bytes:
    with path.open("rb") as handle:
        return handle.read(len(PDF_MAGIC))


class UploadIngestor:
    def __init__(self, settings: Settings) -> None:
        self.max_documents = settings.max_documents
        self.max_file_bytes = settings.max_file_bytes
        self.max_field_bytes = settings.max_field_bytes
        self.max_body_bytes = settings.max_body_bytes

    async def ingest(
        self,
        content_type: str | None,
        stream: AsyncIterable[bytes],
        scratch_dir: Path,
        shape: UploadShape,
    ) -> IngestedUpload:
        media_type, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if media_type.lower() != b"multipart/form-data" or not boundary:
            raise BadRequestError(_MULTIPART_ERROR)

        recorder = _EventRecorder()
        parser = MultipartParser(boundary, recorder.callbacks())
        upload = IngestedUpload()
        state = _IngestState(self, upload, scratch_dir, shape)
        received = 0
        try:
            async for chunk in stream:
                received += len(chunk)
                if received > self.max_body_bytes:
                    raise BadRequestError("Request body too large")
                try:
                    parser.write(chunk)
                except FormParserError as exc:
                    raise BadRequestError(_MULTIPART_ERROR) from exc
                await state.handle(recorder.events)
                recorder.events.clear()
            parser.finalize()
            if not recorder.finished:
                raise BadRequestError(_MULTIPART_ERROR)
        finally:
            await state.close()

        if shape is UploadShape.SINGLE and not upload.documents:
            raise BadRequestError("Missing file")
        LOGGER.info(
            "Ingested %s document(s) (%s mode)",
            upload.document_count,
            "keyed" if upload.keyed else "legacy",
        )
        return upload


class _IngestState:
    def __init__(
        self,
        ingestor: UploadIngestor,
        upload: IngestedUpload,
        scratch_dir: Path,
        shape: UploadShape,
    ) -> None:
        self._ingestor = ingestor
        self._upload = upload
        self._scratch_dir = scratch_dir
        self._shape = shape
        self._legacy_count = 0
        self._file: _OpenFilePart | None = None
        self._control: _OpenControlPart | None = None

    async def handle(self, events: list[tuple[str, object]]) -> None:
        for kind, payload in events:
            if kind == "headers":
                await self._begin(payload)  # type: ignore[arg-type]
            elif kind == "data":
                await self._data(payload)  # type: ignore[arg-type]
            else:
                await self._end()

    async def close(self) -> None:
        if self._file is not None:
            await run_in_threadpool(self._file.handle.close)
            self._file = None

    def _document_id(self, name: str) -> tuple[str, bool]:
        if self._shape is UploadShape.SINGLE:
            if name != SINGLE_FILE_FIELD:
                raise BadRequestError(f"Unexpected form field: {name}")
            if self._upload.documents:
                raise BadRequestError("Only one file may be uploaded")
            return "file", False
        if name == LEGACY_FILES_FIELD:
            return f"legacy_{self._legacy_count}", False
        if name.startswith(KEYED_FILE_PREFIX):
            doc_id = name[len(KEYED_FILE_PREFIX):]
            if not doc_id:
                raise BadRequestError(f"Missing document id in form field: {name}")
            return doc_id, True
        raise BadRequestError(f"Unexpected form field: {name}")

    async def _begin(self, headers: _PartHeaders) -> None:
        name = headers.field_name
        if self._shape is UploadShape.MERGE and name in CONTROL_FIELDS:
            self._control = _OpenControlPart(name=name)
            return

        doc_id, keyed = self._document_id(name)
        upload = self._upload
        if upload.documents and keyed != upload.keyed:
            raise BadRequestError("Cannot mix files and file_<id> uploads in one request")
        if upload.document_count >= self._ingestor.max_documents:
            raise BadRequestError(f"Too many PDFs (max {self._ingestor.max_documents})")
        if keyed and doc_id in upload.documents:
            raise BadRequestError(f"Duplicate document id: {doc_id}")

        filename = headers.filename or "file.pdf"
        if headers.content_type and headers.content_type != PDF_MEDIA_TYPE:
            raise BadRequestError(
                f"Only PDF files are allowed (got {headers.content_type} for {filename})"
            )

        path = self._scratch_dir / f"in_{uuid.uuid4().hex}.pdf"
        handle = await run_in_threadpool(_open_for_write, path)
        self._file = _OpenFilePart(doc_id=doc_id, filename=filename, path=path, handle=handle)
        upload.keyed = keyed
        if not keyed and self._shape is UploadShape.MERGE:
            self._legacy_count += 1

    async def _data(self, data: bytes) -> None:
        if self._control is not None:
            if len(self._control.data) + len(data) > self._ingestor.max_field_bytes:
                raise BadRequestError(f"Form field {self._control.name} is too large")
            self._control.data.extend(data)
            return
        part = self._file
        if part is None:
            return
        part.written += len(data)
        if part.written > self._ingestor.max_file_bytes:
            max_mb = self._ingestor.max_file_bytes // (1024 * 1024)
            raise BadRequestError(f"{part.filename} is too large (max {max_mb} MB)")
        await run_in_threadpool(part.handle.write, data)

    async def _end(self) -> None:
        if self._control is not None:
            control = self._control
            self._control = None
            self._upload.form.set(control.name, control.data.decode("utf-8", errors="replace"))
            return
        part = self._file
        if part is None:
            return
        self._file = None
        await run_in_threadpool(part.handle.close)
        magic = await run_in_threadpool(_read_magic, part.path)
        if magic != PDF_MAGIC:
            raise BadRequestError(f"{part.filename} does not look like a PDF")
        self._upload.documents[part.doc_id] = part.path
        self._upload.filenames[part.doc_id] = part.filename
        LOGGER.debug("Accepted %s as %s (%s bytes)", part.filename, part.doc_id, part.written)
