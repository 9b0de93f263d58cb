"""
Model persistence

Models are stored as a sequential, format-tagged stream of ints, doubles
and strings:

    type tag ("GIS", "QN" or "Perceptron")
    [GIS/QN only] correction constant (int, always 1)
                  correction parameter (double, always 1.0)
    number of outcomes, then one label per outcome
    number of outcome patterns, then one "<count> o1 o2 ..." string per pattern
    number of predicates, then one label per predicate (grouped by pattern)
    the parameters of every predicate, in predicate order

Two encodings carry this stream. The binary one is compatible with Java's
``DataOutput`` (big-endian int32/float64, modified UTF-8 strings with a
two byte length prefix); the plain-text one writes one value per line.
Strings too long for a single record are split into chunks behind a
``CHUNKED-MODEL-PARAMS:<n>`` signature record and joined again on read.
"""

import gzip
import io
import logging
import math
import struct
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, TextIO, Tuple, Union

from ..core.exceptions import ModelFormatError
from .context import Context
from .model import Model
from .types import ModelType

logger = logging.getLogger(__name__)

SIGNATURE_CHUNKED_PARAMS = 'CHUNKED-MODEL-PARAMS:'
MAX_CHUNK_SIZE_BYTES = 65535

CORRECTION_CONSTANT = 1
CORRECTION_PARAM = 1.0


# ----------------------------------------------------------------------
# string encoding helpers
# ----------------------------------------------------------------------

def encode_modified_utf8(text: str) -> bytes:
    """Encode like ``DataOutput.writeUTF`` (without the length prefix)

    NUL is written as two bytes and characters outside the BMP as an
    encoded surrogate pair.
    """
    units = text.encode('utf-16-be', 'surrogatepass')
    out = bytearray()
    for i in range(0, len(units), 2):
        c = (units[i] << 8) | units[i + 1]
        if 0x0001 <= c <= 0x007F:
            out.append(c)
        elif c <= 0x07FF:
            out.append(0xC0 | (c >> 6))
            out.append(0x80 | (c & 0x3F))
        else:
            out.append(0xE0 | (c >> 12))
            out.append(0x80 | ((c >> 6) & 0x3F))
            out.append(0x80 | (c & 0x3F))
    return bytes(out)


def decode_modified_utf8(data: bytes) -> str:
    units = bytearray()
    i, n = 0, len(data)
    while i < n:
        b = data[i]
        if b < 0x80:
            c, i = b, i + 1
        elif b & 0xE0 == 0xC0:
            if i + 1 >= n or data[i + 1] & 0xC0 != 0x80:
                raise ModelFormatError(f"Malformed modified UTF-8 input around byte {i}")
            c, i = ((b & 0x1F) << 6) | (data[i + 1] & 0x3F), i + 2
        elif b & 0xF0 == 0xE0:
            if i + 2 >= n or data[i + 1] & 0xC0 != 0x80 or data[i + 2] & 0xC0 != 0x80:
                raise ModelFormatError(f"Malformed modified UTF-8 input around byte {i}")
            c = ((b & 0x0F) << 12) | ((data[i + 1] & 0x3F) << 6) | (data[i + 2] & 0x3F)
            i += 3
        else:
            raise ModelFormatError(f"Malformed modified UTF-8 input around byte {i}")
        units += c.to_bytes(2, 'big')
    return units.decode('utf-16-be', 'surrogatepass')


def split_by_byte_length(text: str, encode: Callable[[str], bytes],
                         max_bytes: int = MAX_CHUNK_SIZE_BYTES) -> List[str]:
    """Split ``text`` into pieces whose encoded size is at most ``max_bytes``

    Characters are never split across two chunks.
    """
    chunks: List[str] = []
    current: List[str] = []
    size = 0
    for ch in text:
        n = len(encode(ch))
        if size + n > max_bytes and current:
            chunks.append(''.join(current))
            current, size = [], 0
        current.append(ch)
        size += n
    chunks.append(''.join(current))
    return chunks


def _utf8(text: str) -> bytes:
    return text.encode('utf-8', 'surrogatepass')


# ----------------------------------------------------------------------
# writers
# ----------------------------------------------------------------------

class DataWriter:
    """Primitive sink of the model stream; chunks over-long strings"""

    def _encode(self, text: str) -> bytes:
        raise NotImplementedError

    def _write_record(self, text: str) -> None:
        raise NotImplementedError

    def write_int(self, value: int) -> None:
        raise NotImplementedError

    def write_double(self, value: float) -> None:
        raise NotImplementedError

    def write_utf(self, text: str) -> None:
        if len(self._encode(text)) <= MAX_CHUNK_SIZE_BYTES:
            self._write_record(text)
            return
        chunks = split_by_byte_length(text, self._encode)
        logger.debug(f"Writing {len(self._encode(text))} byte string in {len(chunks)} chunks")
        self._write_record(f"{SIGNATURE_CHUNKED_PARAMS}{len(chunks)}")
        for chunk in chunks:
            self._write_record(chunk)


class BinaryDataWriter(DataWriter):
    """``DataOutput`` compatible binary encoding"""

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def _encode(self, text: str) -> bytes:
        return encode_modified_utf8(text)

    def _write_record(self, text: str) -> None:
        data = encode_modified_utf8(text)
        self.stream.write(struct.pack('>H', len(data)))
        self.stream.write(data)

    def write_int(self, value: int) -> None:
        self.stream.write(struct.pack('>i', value))

    def write_double(self, value: float) -> None:
        self.stream.write(struct.pack('>d', value))


class PlainTextDataWriter(DataWriter):
    """One value per line, UTF-8"""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def _encode(self, text: str) -> bytes:
        return _utf8(text)

    def _write_record(self, text: str) -> None:
        self.stream.write(text)
        self.stream.write('\n')

    def write_int(self, value: int) -> None:
        self.stream.write(f"{int(value)}\n")

    def write_double(self, value: float) -> None:
        if math.isnan(value):
            text = 'NaN'
        elif math.isinf(value):
            text = 'Infinity' if value > 0 else '-Infinity'
        else:
            text = repr(float(value))
        self.stream.write(f"{text}\n")


# ----------------------------------------------------------------------
# readers
# ----------------------------------------------------------------------

class DataReader:
    """Primitive source of the model stream; joins chunked strings"""

    def _read_record(self) -> str:
        raise NotImplementedError

    def read_int(self) -> int:
        raise NotImplementedError

    def read_double(self) -> float:
        raise NotImplementedError

    def read_utf(self) -> str:
        data = self._read_record()
        if not data.startswith(SIGNATURE_CHUNKED_PARAMS):
            return data
        count_text = data[len(SIGNATURE_CHUNKED_PARAMS):]
        try:
            count = int(count_text)
        except ValueError:
            raise ModelFormatError(f"Invalid chunk count in signature {data!r}")
        if count < 0:
            raise ModelFormatError(f"Invalid chunk count in signature {data!r}")
        return ''.join(self._read_record() for _ in range(count))


class BinaryDataReader(DataReader):

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def _read_exactly(self, size: int) -> bytes:
        data = self.stream.read(size)
        if data is None or len(data) != size:
            raise ModelFormatError(
                f"Unexpected end of model data: wanted {size} bytes, "
                f"got {0 if not data else len(data)}")
        return data

    def _read_record(self) -> str:
        (length,) = struct.unpack('>H', self._read_exactly(2))
        return decode_modified_utf8(self._read_exactly(length))

    def read_int(self) -> int:
        return struct.unpack('>i', self._read_exactly(4))[0]

    def read_double(self) -> float:
        return struct.unpack('>d', self._read_exactly(8))[0]


class PlainTextDataReader(DataReader):

    def __init__(self, stream: TextIO):
        self.stream = stream

    def _read_record(self) -> str:
        line = self.stream.readline()
        if not line:
            raise ModelFormatError("Unexpected end of model data")
        if line.endswith('\n'):
            line = line[:-1]
        if line.endswith('\r'):
            line = line[:-1]
        return line

    def read_int(self) -> int:
        text = self._read_record()
        try:
            return int(text.strip())
        except ValueError:
            raise ModelFormatError(f"Expected an integer, got {text!r}")

    def read_double(self) -> float:
        text = self._read_record()
        try:
            return float(text.strip())
        except ValueError:
            raise ModelFormatError(f"Expected a number, got {text!r}")


# ----------------------------------------------------------------------
# model level
# ----------------------------------------------------------------------

def sort_predicates(model: Model) -> List[int]:
    """Predicate ids ordered by outcome pattern

    Patterns compare outcome by outcome, a shorter pattern sorts first when
    it is a prefix of a longer one. The sort is stable.
    """
    return sorted(range(model.num_predicates),
                  key=lambda pid: tuple(model.params[pid].outcomes.tolist()))


def group_outcome_patterns(model: Model, order: List[int]) -> List[Tuple[Tuple[int, ...], int]]:
    """(pattern, number of predicates sharing it) runs of an ordered predicate list"""
    groups: List[Tuple[Tuple[int, ...], int]] = []
    for pid in order:
        pattern = tuple(model.params[pid].outcomes.tolist())
        if groups and groups[-1][0] == pattern:
            groups[-1] = (pattern, groups[-1][1] + 1)
        else:
            groups.append((pattern, 1))
    return groups


class ModelWriter:
    """Serializes a :class:`Model` onto a :class:`DataWriter`

    Perceptron models are compacted first: zero weights and predicates
    without any remaining weight are not written.
    """

    def __init__(self, model: Model, writer: DataWriter):
        self.model = model
        self.writer = writer

    def persist(self) -> None:
        model = self.model
        if model.model_type is ModelType.PERCEPTRON:
            model = model.compacted()
            logger.info(f"Compressed {self.model.num_predicates} parameters "
                        f"to {model.num_predicates}")

        writer = self.writer
        writer.write_utf(model.model_type.value)
        if model.model_type.is_maxent:
            writer.write_int(CORRECTION_CONSTANT)
            writer.write_double(CORRECTION_PARAM)

        writer.write_int(model.num_outcomes)
        for label in model.outcome_labels:
            writer.write_utf(label)

        order = sort_predicates(model)
        groups = group_outcome_patterns(model, order)
        writer.write_int(len(groups))
        for pattern, count in groups:
            writer.write_utf(str(count) + ''.join(f" {oid}" for oid in pattern))

        writer.write_int(len(order))
        for pid in order:
            writer.write_utf(model.pred_labels[pid])

        for pid in order:
            for param in model.params[pid].parameters:
                writer.write_double(float(param))

        logger.debug(f"Wrote {model.model_type.value} model: {model.num_outcomes} outcomes, "
                     f"{len(groups)} outcome patterns, {len(order)} predicates")


class ModelReader:
    """Builds a :class:`Model` from a :class:`DataReader`

    An unknown type tag is logged and the stream is read with the GIS
    layout. Any structural problem raises :class:`ModelFormatError` before
    a model is constructed.
    """

    def __init__(self, reader: DataReader, expected_type: Optional[ModelType] = None):
        self.reader = reader
        self.expected_type = expected_type

    def read_model(self) -> Model:
        reader = self.reader

        tag = reader.read_utf()
        try:
            model_type = ModelType.from_tag(tag)
        except ValueError:
            logger.error(f"Error: attempting to load a {tag} model as a GIS model. "
                         f"You should expect problems.")
            model_type = ModelType.GIS
        if self.expected_type is not None and model_type is not self.expected_type:
            logger.warning(f"Expected a {self.expected_type.value} model, "
                           f"found {model_type.value}")

        if model_type.is_maxent:
            # correction constant and parameter are only kept for compatibility
            reader.read_int()
            reader.read_double()

        num_outcomes = self._read_count('outcome')
        outcome_labels = [reader.read_utf() for _ in range(num_outcomes)]

        num_patterns = self._read_count('outcome pattern')
        patterns = [self._parse_pattern(reader.read_utf(), num_outcomes)
                    for _ in range(num_patterns)]

        num_preds = self._read_count('predicate')
        pred_labels = [reader.read_utf() for _ in range(num_preds)]

        declared = sum(count for count, _ in patterns)
        if declared != num_preds:
            raise ModelFormatError(
                f"Outcome patterns cover {declared} predicates, file declares {num_preds}")

        params: List[Context] = []
        for count, outcomes in patterns:
            for _ in range(count):
                weights = [reader.read_double() for _ in outcomes]
                params.append(Context(outcomes, weights))

        return Model(params, pred_labels, outcome_labels, model_type)

    def _read_count(self, what: str) -> int:
        count = self.reader.read_int()
        if count < 0:
            raise ModelFormatError(f"Negative {what} count: {count}")
        return count

    @staticmethod
    def _parse_pattern(text: str, num_outcomes: int) -> Tuple[int, List[int]]:
        try:
            numbers = [int(token) for token in text.split()]
        except ValueError:
            raise ModelFormatError(f"Invalid outcome pattern {text!r}")
        if not numbers or numbers[0] < 0:
            raise ModelFormatError(f"Invalid outcome pattern {text!r}")
        outcomes = numbers[1:]
        if any(oid < 0 or oid >= num_outcomes for oid in outcomes):
            raise ModelFormatError(f"Outcome pattern {text!r} refers to an unknown outcome")
        return numbers[0], outcomes


# ----------------------------------------------------------------------
# files
# ----------------------------------------------------------------------

def _is_binary_path(path: Path) -> bool:
    name = path.name[:-3] if path.name.endswith('.gz') else path.name
    return name.endswith('.bin')


def _open(path: Path, mode: str):
    if path.name.endswith('.gz'):
        return gzip.open(path, mode)
    return open(path, mode)


def save_model(model: Model, path: Union[str, Path], binary: Optional[bool] = None) -> Path:
    """
    Write a model to disk

    Args:
        model: Model to persist
        path: Target file; a ``.gz`` suffix compresses the output
        binary: Encoding to use; by default binary for ``.bin`` files
                (``model.bin``, ``model.bin.gz``) and plain text otherwise

    Returns:
        The path written to
    """
    path = Path(path)
    if binary is None:
        binary = _is_binary_path(path)

    with _open(path, 'wb') as raw:
        if binary:
            ModelWriter(model, BinaryDataWriter(raw)).persist()
        else:
            text = io.TextIOWrapper(raw, encoding='utf-8', newline='\n')
            ModelWriter(model, PlainTextDataWriter(text)).persist()
            text.flush()
            text.detach()

    logger.info(f"Saved {model.model_type.value} model to {path}")
    return path


def load_model(path: Union[str, Path], binary: Optional[bool] = None,
               expected_type: Optional[ModelType] = None) -> Model:
    """Read a model written by :func:`save_model`"""
    path = Path(path)
    if binary is None:
        binary = _is_binary_path(path)

    with _open(path, 'rb') as raw:
        if binary:
            model = ModelReader(BinaryDataReader(raw), expected_type).read_model()
        else:
            text = io.TextIOWrapper(raw, encoding='utf-8', newline='')
            try:
                model = ModelReader(PlainTextDataReader(text), expected_type).read_model()
            except UnicodeDecodeError as e:
                raise ModelFormatError(f"{path} is not a plain-text model: {e}")
            finally:
                text.detach()

    logger.info(f"Loaded {model.model_type.value} model from {path}")
    return model
