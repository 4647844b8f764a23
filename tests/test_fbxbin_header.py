"""
Unit tests for fbxbin library - Header validation tests

This test file covers the magic signature and version checks performed
before any node is decoded.
"""

import io
import os
import sys
import struct
import pytest

# Add the lib directory to the path to import fbxbin
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))) + "/lib")
import fbxbin

from fbx_testdata import MAGIC, NULL_NODE, HEADER_SIZE, header, build_file, prop_int32


def test_empty_file():
    """A header followed by a null node decodes to an empty forest."""
    stream = io.BytesIO(header(7400) + NULL_NODE)
    assert fbxbin.decode(stream) == []
    assert stream.tell() == HEADER_SIZE + len(NULL_NODE)

def test_version_is_recorded():
    """The header version is available on the reader after decoding."""
    reader = fbxbin.FBXFileReader(io.BytesIO(header(7300) + NULL_NODE))
    reader.read()
    assert reader.version == 7300

def test_wrong_magic():
    """A wrong signature fails before any node is read."""
    data = b"Kaydara FBX Binary  \x00\x1a\x01" + struct.pack('<I', 7400) + NULL_NODE
    stream = io.BytesIO(data)
    with pytest.raises(fbxbin.FormatError):
        fbxbin.decode(stream)
    # Only the magic has been consumed
    assert stream.tell() == len(MAGIC)

def test_ascii_fbx_is_rejected():
    """The text variant of the format is not accepted."""
    data = b"; FBX 7.4.0 project file\n; ------------------\n"
    with pytest.raises(fbxbin.FormatError):
        fbxbin.decode(io.BytesIO(data))

@pytest.mark.parametrize("version", [7500, 7700, 0xFFFFFFFF])
def test_unsupported_version(version):
    """Versions from 7500 on fail after the header has been consumed."""
    stream = io.BytesIO(build_file([("Node", [prop_int32(1)], [])], version=version))
    with pytest.raises(fbxbin.UnsupportedVersionError):
        fbxbin.decode(stream)
    assert stream.tell() == HEADER_SIZE

def test_unsupported_version_is_format_error():
    with pytest.raises(fbxbin.FormatError):
        fbxbin.decode(io.BytesIO(header(7500) + NULL_NODE))

@pytest.mark.parametrize("version", [6100, 7100, 7400, 7499])
def test_supported_versions(version):
    nodes = fbxbin.decode(io.BytesIO(build_file([("Node", [prop_int32(1)], [])], version=version)))
    assert len(nodes) == 1
    assert nodes[0].name == "Node"

def test_truncated_header():
    """A file shorter than the header fails with a read error."""
    with pytest.raises(fbxbin.ReadError):
        fbxbin.decode(io.BytesIO(MAGIC[:10]))
    with pytest.raises(fbxbin.ReadError):
        fbxbin.decode(io.BytesIO(MAGIC + b"\x40\x1c"))

def test_missing_null_node():
    """A top-level list without a null node is a truncated file."""
    with pytest.raises(fbxbin.ReadError):
        fbxbin.decode(io.BytesIO(header(7400)))

def test_error_hierarchy():
    """Errors map onto the built-in exception categories."""
    assert issubclass(fbxbin.FormatError, ValueError)
    assert issubclass(fbxbin.DecodeError, ValueError)
    assert issubclass(fbxbin.ReadError, IOError)
    for error in (fbxbin.FormatError, fbxbin.DecodeError, fbxbin.ReadError):
        assert issubclass(error, fbxbin.FBXError)

def test_decode_from_current_position():
    """decode() starts at the current stream position."""
    prefix = b"\xff" * 17
    stream = io.BytesIO(prefix + header(7400) + NULL_NODE)
    stream.seek(len(prefix))
    assert fbxbin.decode(stream) == []
