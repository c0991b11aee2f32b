"""
Sequential record source over delimited text.

The source follows a two-phase protocol: `read_header()` consumes the first row
as the column list, then `records()` streams the remaining rows as `Record`
values. Field counts are not checked against the header here; a mismatch
surfaces as an insert error when the statement is executed.

Usage:
    from bulk_loader.source import open_source

    with open_source("data.csv") as source:
        header = source.read_header()
        for record in source:
            ...
"""

from __future__ import annotations

import codecs
import contextlib
import csv
from pathlib import Path
from typing import BinaryIO, Generator, Iterable, Iterator, Optional

from pydantic import ValidationError

from bulk_loader.domain.models import Header, Record
from bulk_loader.errors import EmptySourceError, HeaderError, SourceReadError
from bulk_loader.utils.logging import get_logger

log = get_logger(__name__)

_CANDIDATE_DELIMITERS = (",", "\t", ";", "|")


def detect_delimiter(header_line: str) -> str:
    """
    Pick the delimiter that occurs most often in the header line.

    Falls back to a comma when none of the candidates appear.
    """
    counts = {candidate: header_line.count(candidate) for candidate in _CANDIDATE_DELIMITERS}
    best = max(_CANDIDATE_DELIMITERS, key=lambda candidate: counts[candidate])
    return best if counts[best] > 0 else ","


class RecordSource:
    """
    Parse rows from a text stream, header first.

    Parameters
    ----------
    stream : Iterable[str]
        Text stream opened with `newline=""` as the csv module expects, or any
        iterable of lines that keep their line endings.
    delimiter : str
        Single-character field delimiter.
    """

    def __init__(self, stream: Iterable[str], delimiter: str = ",") -> None:
        self._reader = csv.reader(stream, delimiter=delimiter)
        self.delimiter = delimiter
        self._header: Optional[Header] = None

    @property
    def header(self) -> Optional[Header]:
        return self._header

    def _read_row(self) -> Optional[tuple[int, list[str]]]:
        """Return the next non-blank row with the line it starts on, or None at end of stream."""
        while True:
            line = self._reader.line_num + 1
            try:
                row = next(self._reader)
            except StopIteration:
                return None
            except (csv.Error, UnicodeDecodeError, OSError) as exc:
                raise SourceReadError(f"Failed to read line {line}: {exc}", line_number=line) from exc
            if row:
                return line, row

    def read_header(self) -> Header:
        """
        Consume the first row as the header.

        Raises
        ------
        EmptySourceError
            If the stream ends before any row is read.
        HeaderError
            If the row is not a valid column list.
        """
        if self._header is not None:
            raise RuntimeError("Header has already been read from this source")
        read = self._read_row()
        if read is None:
            raise EmptySourceError("Source is empty; expected a header row", line_number=0)
        line, row = read
        try:
            self._header = Header(columns=row)
        except ValidationError as exc:
            raise HeaderError(
                f"Invalid header on line {line}: {exc.errors()[0]['msg']}",
                line_number=line,
            ) from exc
        log.debug(
            "Header read",
            extra={"columns": list(self._header.columns), "delimiter": self.delimiter},
        )
        return self._header

    def next_record(self) -> Optional[Record]:
        """Return the next record, or None once the stream is exhausted."""
        if self._header is None:
            raise RuntimeError("read_header() must be called before streaming records")
        read = self._read_row()
        if read is None:
            return None
        line, row = read
        return Record(line_number=line, values=tuple(row))

    def records(self) -> Iterator[Record]:
        """Yield records until end of stream; read errors propagate."""
        while True:
            record = self.next_record()
            if record is None:
                return
            yield record

    def __iter__(self) -> Iterator[Record]:
        return self.records()


@contextlib.contextmanager
def open_source(
    path: Path | str,
    delimiter: Optional[str] = None,
    encoding: str = "utf-8-sig",
) -> Generator[RecordSource, None, None]:
    """
    Open a delimited file as a RecordSource.

    When `delimiter` is None it is detected from the first line of the file.
    The default `utf-8-sig` encoding drops a leading byte-order mark. The file
    is decoded one line at a time, so an undecodable byte fails the row it sits
    on and every earlier row is still read. The encoding must keep `\\n` as a
    single byte (UTF-8, Latin-1 and other ASCII supersets do).
    """
    file_path = Path(path)
    decoder = codecs.getincrementaldecoder(encoding)()
    with file_path.open("rb") as f:
        if delimiter is None:
            first_line = f.readline().decode(encoding, errors="replace")
            delimiter = detect_delimiter(first_line)
            f.seek(0)
            log.info(f"Detected delimiter {delimiter!r}", extra={"path": str(file_path)})
        yield RecordSource(_decode_lines(f, decoder), delimiter=delimiter)


def _decode_lines(raw: BinaryIO, decoder: codecs.IncrementalDecoder) -> Iterator[str]:
    for chunk in raw:
        yield decoder.decode(chunk)
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


__all__ = ["RecordSource", "detect_delimiter", "open_source"]
