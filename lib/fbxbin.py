"""
fbxbin - Reader for the binary FBX scene interchange format

A Python implementation for decoding binary FBX files into a generic tree
of named nodes carrying typed properties. The reader is purely structural:
it does not interpret meshes, materials or transforms, and it never writes
FBX data back out.

Features:
- Header validation (magic signature and version check)
- Decoding of the nested node-list grammar with a bounded nesting depth
- All scalar, string and raw byte property types
- NumPy arrays for array properties, raw or zlib-compressed
- Limits on nesting depth and buffer sizes for untrusted input

License: MIT
"""

__version__ = "0.1.0"

import struct
import zlib
import numpy as np
from typing import Any, BinaryIO, Iterator, List, Optional, Tuple


# Grammar of the binary FBX format (little-endian throughout)

# <file>        ::= <header> <node_list>
# <header>      ::= "Kaydara FBX Binary  \x00\x1a\x00" <u32 version>
# <node_list>   ::= <null_node> | <node> | <node> <node_list>
# <node>        ::= <u32 end_offset> <u32 num_properties> <u32 property_list_len>
#                   <u8 name_len> <name> <property>* <node_list>?
# <null_node>   ::= 13 zero bytes
# <property>    ::= <scalar> | <blob> | <array>
# <scalar>      ::= "C" <u8> | "Y" <i16> | "I" <i32> | "L" <i64> | "F" <f32> | "D" <f64>
# <blob>        ::= ("R" | "S") <u32 length> <bytes>
# <array>       ::= ("b" | "c" | "i" | "l" | "f" | "d")
#                   <u32 length> <u32 encoding> <u32 compressed_length> <data>

# A child node list ends either with a null node or when the stream position
# reaches the end offset of its parent.

FBX_MAGIC = b"Kaydara FBX Binary  \x00\x1a\x00"

# Versions from 7500 on use 64-bit node header fields
MAX_VERSION = 7500

DEFAULT_MAX_DEPTH = 256
DEFAULT_MAX_ARRAY_BYTES = 256 * 1024 * 1024

NODE_HEADER_SIZE = 13


class FBXError(Exception):
    """Base class for all errors raised while decoding FBX data."""


class FormatError(FBXError, ValueError):
    """The data does not start with a valid binary FBX header."""


class UnsupportedVersionError(FormatError):
    """The header announces a version this reader cannot decode."""


class DecodeError(FBXError, ValueError):
    """The node or property structure is malformed."""


class EncodingError(DecodeError):
    """A node name or string property is not valid UTF-8."""


class UnknownPropertyTypeError(DecodeError):
    pass


class UnknownArrayEncodingError(DecodeError):
    pass


class DecompressionError(DecodeError):
    pass


class DepthLimitError(DecodeError):
    pass


class SizeLimitError(DecodeError):
    pass


class ReadError(FBXError, IOError):
    """The stream ended before a field could be read completely."""


# Scalar property type codes and their struct formats
scalar_formats = {
    'Y': '<h',  # 16-bit signed integer
    'I': '<i',  # 32-bit signed integer
    'L': '<q',  # 64-bit signed integer
    'F': '<f',  # 32-bit float
    'D': '<d',  # 64-bit float
}

# Map array type codes to little-endian NumPy dtypes.
# Booleans are stored as one byte per element.
array_dtypes = {
    'b': np.dtype('u1'),   # Boolean
    'c': np.dtype('i1'),   # 8-bit signed integer
    'i': np.dtype('<i4'),  # 32-bit signed integer
    'l': np.dtype('<i8'),  # 64-bit signed integer
    'f': np.dtype('<f4'),  # 32-bit float
    'd': np.dtype('<f8'),  # 64-bit float
}


def inflate(data: bytes, expected_size: int) -> bytes:
    """
    Decompress a zlib stream that must expand to exactly expected_size bytes.

    Args:
        data: The compressed bytes, including the zlib header
        expected_size: Number of bytes the stream must decompress to

    Returns:
        bytes: The decompressed data

    Raises:
        DecompressionError: If the stream is corrupt, incomplete, or its
                            decompressed size differs from expected_size
    """
    decompressor = zlib.decompressobj()
    try:
        # One byte more than expected is enough to detect oversized streams
        result = decompressor.decompress(data, expected_size + 1)
    except zlib.error as e:
        raise DecompressionError(f"Failed to inflate array data: {e}") from e

    if len(result) > expected_size:
        raise DecompressionError(
            f"Array data inflates to more than the expected {expected_size} bytes")
    if not decompressor.eof:
        raise DecompressionError("Compressed array data is incomplete")
    if len(result) != expected_size:
        raise DecompressionError(
            f"Array data inflates to {len(result)} bytes, expected {expected_size}")
    return result


class Property:
    """
    A typed value attached to a node.

    Attributes:
        type_code: The one-character FBX type tag (e.g. 'I', 'S', 'd')
        value: The decoded value. Scalars are bool, int or float, 'R' is
               bytes, 'S' is str, and array types are 1D NumPy arrays.
    """

    __slots__ = ('type_code', 'value')

    def __init__(self, type_code: str, value: Any):
        self.type_code = type_code
        self.value = value

    @property
    def is_array(self) -> bool:
        return self.type_code in array_dtypes

    def __eq__(self, other):
        if not isinstance(other, Property):
            return NotImplemented
        if self.type_code != other.type_code:
            return False
        if self.is_array:
            return (self.value.dtype == other.value.dtype
                    and np.array_equal(self.value, other.value))
        return self.value == other.value

    def __repr__(self):
        return f"Property({self.type_code!r}, {self.value!r})"


class Node:
    """
    A named FBX record with an ordered property list and ordered child nodes.

    Indexing a node returns the value of a property, iterating over it
    yields its children.
    """

    __slots__ = ('name', 'properties', 'children')

    def __init__(self, name: str, properties: List[Property] = None, children: List['Node'] = None):
        self.name = name
        self.properties = properties if properties is not None else []
        self.children = children if children is not None else []

    def values(self) -> List[Any]:
        """Return the decoded values of all properties in order."""
        return [prop.value for prop in self.properties]

    def find(self, name: str) -> Optional['Node']:
        """Return the first direct child with the given name, or None."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_all(self, name: str) -> List['Node']:
        """Return all direct children with the given name."""
        return [child for child in self.children if child.name == name]

    def __getitem__(self, index):
        return self.properties[index].value

    def __len__(self):
        return len(self.properties)

    def __iter__(self):
        return iter(self.children)

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return (self.name == other.name
                and self.properties == other.properties
                and self.children == other.children)

    def __repr__(self):
        return f"Node({self.name!r}, {self.properties!r}, {self.children!r})"


class File:
    """
    A class for reading binary FBX files.

    Example:
        with fbxbin.File('scene.fbx') as f:
            objects = f['Objects']
            for node in objects:
                print(node.name, node.values())
    """

    def __init__(self, filename: str, mode: str = 'r',
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 max_array_bytes: int = DEFAULT_MAX_ARRAY_BYTES):
        """
        Initialize an fbxbin.File object.

        Args:
            filename: Path to the file
            mode: File mode, only 'r' is supported
            max_depth: Maximum nesting depth of nodes
            max_array_bytes: Maximum size in bytes of any single array,
                             string or raw property
        """
        self.filename = filename
        self.mode = mode
        self.file = None
        self.reader = None
        self.max_depth = max_depth
        self.max_array_bytes = max_array_bytes
        self._nodes = None

    def __enter__(self):
        """Context manager entry point."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit point."""
        self.close()

    def open(self):
        """Open the file for reading."""
        if self.mode != 'r':
            raise ValueError(f"Unsupported mode: {self.mode}")
        self.file = open(self.filename, 'rb')
        self.reader = FBXFileReader(self.file, max_depth=self.max_depth,
                                    max_array_bytes=self.max_array_bytes)
        self._nodes = None

    def close(self):
        """Close the file."""
        if self.file and not self.file.closed:
            self.file.close()

    def _check_open(self):
        if not self.file or self.file.closed:
            raise IOError("File is not open for reading")

    @property
    def version(self) -> int:
        """The FBX version number from the file header."""
        self._check_open()
        if self.reader.version is None:
            self.file.seek(0)
            self.reader._read_header()
        return self.reader.version

    def read(self) -> List[Node]:
        """
        Decode the whole file.

        Returns:
            List[Node]: The top-level nodes of the file
        """
        self._check_open()
        self._nodes = self.reader.read()
        return self._nodes

    def _root_nodes(self) -> List[Node]:
        if self._nodes is None:
            self.read()
        return self._nodes

    def __getitem__(self, key):
        """
        Access a top-level node by name or position.

        Args:
            key: Node name (first node with that name is returned) or an
                 integer index

        Raises:
            KeyError: If no top-level node has the given name
            IOError: If the file is not open
        """
        self._check_open()
        nodes = self._root_nodes()
        if isinstance(key, int):
            return nodes[key]
        for node in nodes:
            if node.name == key:
                return node
        raise KeyError(f"Node {key} not found in file")

    def keys(self) -> List[str]:
        """Return the names of the top-level nodes in file order."""
        self._check_open()
        return [node.name for node in self._root_nodes()]

    def __len__(self):
        self._check_open()
        return len(self._root_nodes())

    def read_debug(self, indent_size: int = 2, max_indent_level: int = 10, max_array_items: int = 8) -> Iterator[str]:
        """
        Iterator over a readable dump of the file.

        This is a convenience method that delegates to the reader's read_debug method.
        """
        self._check_open()
        return self.reader.read_debug(indent_size, max_indent_level, max_array_items)


class FBXFileReader:
    """
    A class for decoding binary FBX data from a readable, seekable stream.

    The decoder is a recursive descent over the node grammar: node lists
    contain nodes, nodes contain properties and a child node list.
    """

    def __init__(self, file: BinaryIO,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 max_array_bytes: int = DEFAULT_MAX_ARRAY_BYTES):
        """
        Initialize an FBXFileReader object.

        Args:
            file: The binary stream to read from
            max_depth: Maximum nesting depth of nodes
            max_array_bytes: Maximum size in bytes of any single array,
                             string or raw property
        """
        self.file = file
        self.max_depth = max_depth
        self.max_array_bytes = max_array_bytes
        self.version = None
        self._stream_size = None

    def read(self, pos: int = 0) -> List[Node]:
        """
        Decode an FBX file starting at the given stream position.

        Args:
            pos: Stream position of the FBX header

        Returns:
            List[Node]: The top-level nodes of the file
        """
        # Plain read/seek/tell sources have no closed attribute
        if not self.file or getattr(self.file, 'closed', False):
            raise IOError("File is not open for reading")

        self._stream_size = self._measure_stream()
        self.file.seek(pos)
        self._read_header()
        return self._read_node_list(None, 0)

    def _measure_stream(self) -> Optional[int]:
        """Return the total stream size, or None if the stream cannot tell."""
        if not getattr(self.file, 'seekable', lambda: True)():
            return None
        current = self.file.tell()
        # seek() does not return the new position on every stream type
        self.file.seek(0, 2)
        size = self.file.tell()
        self.file.seek(current)
        return size

    def _read_exact(self, size: int, what: str) -> bytes:
        """
        Read exactly size bytes from the stream.

        Args:
            size: Number of bytes to read
            what: Name of the field being read, used in error messages

        Raises:
            ReadError: If the stream ends before size bytes are available
        """
        pos = self.file.tell()
        if self._stream_size is not None and pos + size > self._stream_size:
            raise ReadError(
                f"Unexpected end of file when reading {what} at position {pos}: "
                f"{size} bytes needed, {max(0, self._stream_size - pos)} available")

        data = self.file.read(size)
        if len(data) < size:
            raise ReadError(
                f"Unexpected end of file when reading {what} at position {pos}: "
                f"{size} bytes needed, {len(data)} read")
        return data

    def _read_uint32(self, what: str) -> int:
        return struct.unpack('<I', self._read_exact(4, what))[0]

    def _check_size(self, size: int, what: str):
        if size > self.max_array_bytes:
            raise SizeLimitError(
                f"Size of {what} at position {self.file.tell()} is {size} bytes, "
                f"limit is {self.max_array_bytes}")

    def _read_header(self):
        """
        Read and validate the file header.

        Raises:
            FormatError: If the magic signature does not match
            UnsupportedVersionError: If the version is 7500 or above
        """
        magic = self._read_exact(len(FBX_MAGIC), "header magic")
        if magic != FBX_MAGIC:
            raise FormatError(f"Invalid FBX header magic: {magic!r}")

        version = self._read_uint32("header version")
        if version >= MAX_VERSION:
            raise UnsupportedVersionError(
                f"Unsupported FBX version {version}, only versions below {MAX_VERSION} are supported")
        self.version = version

    def _read_node_list(self, end: Optional[int], depth: int) -> List[Node]:
        """
        Read sibling nodes until a null node or the end offset is reached.

        Args:
            end: Absolute stream position where the list ends, or None for
                 the unbounded top-level list
            depth: Nesting depth of the nodes in this list

        Returns:
            List[Node]: The nodes read, in file order
        """
        nodes = []
        # Explicit stack of (end, siblings) frames, one per open node list,
        # so nesting depth is limited by max_depth and not by the interpreter
        stack = [(end, nodes)]
        while stack:
            siblings = stack[-1][1]
            result = self._read_node(depth + len(stack) - 1)
            if result is None:
                # Null node closes the innermost list
                stack.pop()
            else:
                node, end_offset = result
                siblings.append(node)
                # Leaf nodes end right after their properties and carry no null node
                if self.file.tell() < end_offset:
                    stack.append((end_offset, node.children))
                    continue

            # Close every list whose end offset has been reached
            while stack and stack[-1][0] is not None and self.file.tell() >= stack[-1][0]:
                stack.pop()
        return nodes

    def _read_node(self, depth: int) -> Optional[Tuple[Node, int]]:
        """
        Read one node header with the node's name and properties.

        Children are not read here, the node is returned with an empty child
        list together with its end offset.

        Returns:
            Tuple[Node, int]: The node and its end offset, or None if a null
                              node was found
        """
        pos = self.file.tell()
        header = self._read_exact(NODE_HEADER_SIZE, "node header")
        end_offset, num_properties, property_list_len, name_len = struct.unpack('<IIIB', header)

        # Null node, end of node list
        if end_offset == 0 and num_properties == 0 and property_list_len == 0 and name_len == 0:
            return None

        if depth >= self.max_depth:
            raise DepthLimitError(
                f"Node at position {pos} exceeds the maximum nesting depth of {self.max_depth}")

        name_binary = self._read_exact(name_len, "node name")
        try:
            name = name_binary.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EncodingError(f"Invalid UTF-8 characters in node name {name_binary!r}") from e

        properties = [self._read_property() for _ in range(num_properties)]
        return Node(name, properties), end_offset

    def _read_property(self) -> Property:
        """
        Read one type tag and the value that follows it.

        Raises:
            UnknownPropertyTypeError: If the tag is not a known FBX type code
        """
        pos = self.file.tell()
        type_code = chr(self._read_exact(1, "property type")[0])

        if type_code == 'C':
            # Boolean, only 1 means true
            value = self._read_exact(1, "boolean property")[0] == 1
        elif type_code in scalar_formats:
            fmt = scalar_formats[type_code]
            value = struct.unpack(fmt, self._read_exact(struct.calcsize(fmt), f"property of type {type_code}"))[0]
        elif type_code == 'R':
            value = self._read_raw_array()
        elif type_code == 'S':
            value = self._read_string()
        elif type_code in array_dtypes:
            value = self._read_array(type_code)
        else:
            raise UnknownPropertyTypeError(
                f"Invalid property type marker {type_code!r} at position {pos}")
        return Property(type_code, value)

    def _read_raw_array(self) -> bytes:
        length = self._read_uint32("raw data length")
        self._check_size(length, "raw data")
        return self._read_exact(length, "raw data")

    def _read_string(self) -> str:
        length = self._read_uint32("string length")
        self._check_size(length, "string")
        binary_data = self._read_exact(length, "string")
        try:
            return binary_data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EncodingError(f"Invalid UTF-8 characters in string property {binary_data!r}") from e

    def _read_array(self, type_code: str) -> np.ndarray:
        """
        Read an array property, either raw or zlib-compressed.

        Args:
            type_code: The array type code ('b', 'c', 'i', 'l', 'f' or 'd')

        Returns:
            np.ndarray: A 1D array in native byte order

        Raises:
            UnknownArrayEncodingError: If the encoding is neither 0 nor 1
            DecompressionError: If compressed data cannot be inflated to the
                                declared array size
        """
        length = self._read_uint32("array length")
        encoding = self._read_uint32("array encoding")
        compressed_length = self._read_uint32("array compressed length")

        if encoding not in (0, 1):
            raise UnknownArrayEncodingError(
                f"Unknown array encoding {encoding} at position {self.file.tell()}")

        dtype = array_dtypes[type_code]
        size = length * dtype.itemsize
        self._check_size(size, f"array of type {type_code}")

        if encoding == 0:
            binary_data = self._read_exact(size, f"array of type {type_code}")
        else:
            self._check_size(compressed_length, f"compressed array of type {type_code}")
            compressed = self._read_exact(compressed_length, f"compressed array of type {type_code}")
            binary_data = inflate(compressed, size)

        flat_array = np.frombuffer(binary_data, dtype=dtype)
        if type_code == 'b':
            result = flat_array == 1
        else:
            result = flat_array.astype(dtype.newbyteorder('='))
        # Decoded values are immutable
        result.setflags(write=False)
        return result

    def read_debug(self, indent_size: int = 2, max_indent_level: int = 10, max_array_items: int = 8) -> Iterator[str]:
        """
        Iterator over a readable dump of the decoded FBX file.

        Each node is printed as its name and property count, followed by one
        line per property in the form "type_code: value":
        - Strings are enclosed in quotation marks
        - Raw bytes are converted to hexadecimal with spaces in between
        - Arrays show at most max_array_items elements
        - Children are indented one level deeper than their parent

        Args:
            indent_size: Number of spaces per indentation level (default: 2)
            max_indent_level: Maximum indentation level (default: 10)
            max_array_items: Maximum number of array elements shown (default: 8)

        Yields:
            str: One formatted line per node or property
        """
        try:
            nodes = self.read()
        except FBXError as e:
            raise type(e)(f"Error at file position {self.file.tell()}: {e}") from e

        yield f"FBX version {self.version}"

        # Explicit stack of (node, level) pairs in display order
        stack = [(node, 0) for node in reversed(nodes)]
        while stack:
            node, level = stack.pop()
            indent = ' ' * min(level, max_indent_level) * indent_size
            yield indent + f"{node.name}: {len(node.properties)} properties"

            prop_indent = ' ' * min(level + 1, max_indent_level) * indent_size
            for prop in node.properties:
                yield prop_indent + f"{prop.type_code}: {self._format_value(prop, max_array_items)}"

            stack.extend((child, level + 1) for child in reversed(node.children))

    @staticmethod
    def _format_value(prop: Property, max_array_items: int) -> str:
        if prop.type_code == 'S':
            return f'"{prop.value}"'
        if prop.type_code == 'R':
            hex_str = ' '.join(f'{b:02x}' for b in prop.value[:max_array_items])
            if len(prop.value) > max_array_items:
                hex_str += f" ... ({len(prop.value)} bytes total)"
            return hex_str
        if prop.is_array:
            items = ' '.join(str(v) for v in prop.value[:max_array_items].tolist())
            if len(prop.value) > max_array_items:
                items += f" ... ({len(prop.value)} items total)"
            return f"[{items}]"
        return str(prop.value)


def decode(file: BinaryIO,
           max_depth: int = DEFAULT_MAX_DEPTH,
           max_array_bytes: int = DEFAULT_MAX_ARRAY_BYTES) -> List[Node]:
    """
    Decode binary FBX data from a stream positioned at the file header.

    Args:
        file: A readable, seekable binary stream
        max_depth: Maximum nesting depth of nodes
        max_array_bytes: Maximum size in bytes of any single array, string
                         or raw property

    Returns:
        List[Node]: The top-level nodes of the file
    """
    reader = FBXFileReader(file, max_depth=max_depth, max_array_bytes=max_array_bytes)
    return reader.read(file.tell())
