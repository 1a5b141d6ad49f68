"""
_io.py
======
Genome input: list files, FASTA/FASTQ records and genome labels.

Sequence files may be plain or gzip-compressed (detected from the magic
bytes, not the extension) and hold FASTA or FASTQ records (detected from the
first non-blank character).  Records are yielded as upper-cased ``bytes``
with line breaks removed; sketching treats each record separately so k-mers
never span two records.
"""

import gzip
from collections import Counter
from pathlib import Path
from typing import IO, Iterator, List, Sequence, Union

from bindashtree._exceptions import GenomeInputError


_GZIP_MAGIC = b"\x1f\x8b"

PathLike = Union[str, Path]


def read_genome_list(list_path: PathLike) -> List[Path]:
    """
    Read a genome list file: one path per line.

    Blank lines and lines starting with '#' are ignored.  Relative paths are
    resolved against the directory of the list file.

    Raises
    ------
    GenomeInputError
        If the list itself cannot be read.
    """
    list_path = Path(list_path)
    try:
        text = list_path.read_text()
    except OSError as e:
        raise GenomeInputError(list_path, e.strerror or str(e)) from e

    genomes = []
    for line in text.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        path = Path(entry).expanduser()
        if not path.is_absolute():
            path = list_path.parent / path
        genomes.append(path)
    return genomes


def _open_binary(path: Path) -> IO[bytes]:
    with path.open("rb") as fh:
        magic = fh.read(2)
    open_func = gzip.open if magic == _GZIP_MAGIC else Path.open
    return open_func(path, "rb")


def read_sequences(path: PathLike) -> Iterator[bytes]:
    """
    Yield every sequence record of a FASTA or FASTQ file.

    Parameters
    ----------
    path : str or Path
        Plain or gzip-compressed sequence file.

    Yields
    ------
    bytes
        Upper-cased sequence of one record.

    Raises
    ------
    GenomeInputError
        If the file is empty or is neither FASTA nor FASTQ.
    OSError
        If the file cannot be opened or its gzip header is invalid.
    EOFError, zlib.error
        If a gzip stream is truncated or corrupt.
    """
    path = Path(path)
    with _open_binary(path) as fh:
        first = b""
        for line in fh:
            first = line.strip()
            if first:
                break
        if not first:
            raise GenomeInputError(path, "file is empty")

        if first.startswith(b">"):
            yield from _fasta_records(fh)
        elif first.startswith(b"@"):
            yield from _fastq_records(fh)
        else:
            raise GenomeInputError(path, "not a FASTA or FASTQ file")


def _fasta_records(fh: IO[bytes]) -> Iterator[bytes]:
    """Records after the first header line has been consumed."""
    chunks: List[bytes] = []
    for line in fh:
        line = line.strip()
        if line.startswith(b">"):
            yield b"".join(chunks).upper()
            chunks = []
        elif line:
            chunks.append(line)
    yield b"".join(chunks).upper()


def _fastq_records(fh: IO[bytes]) -> Iterator[bytes]:
    """Four-line records after the first '@' header has been consumed."""
    while True:
        seq = fh.readline()
        if not seq:
            return
        yield seq.strip().upper()
        fh.readline()  # '+' separator
        fh.readline()  # qualities
        header = fh.readline()
        while header and not header.strip():
            header = fh.readline()
        if not header:
            return


def genome_label(path: PathLike) -> str:
    """Label of a genome file: its basename."""
    return Path(path).name


def genome_labels(paths: Sequence[PathLike]) -> List[str]:
    """
    Unique labels for a list of genome files.

    Basenames are used unless two files share one, in which case every genome
    is labelled with its path as given.
    """
    names = [genome_label(p) for p in paths]
    if len(set(names)) == len(names):
        return names
    labels = [str(p) for p in paths]
    repeated = [label for label, count in Counter(labels).items() if count > 1]
    if repeated:
        raise GenomeInputError(repeated[0], "listed more than once in the genome list")
    return labels
