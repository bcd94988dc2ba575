import pytest

from trantor.buffer_node import (
    AsyncBufferNode,
    AsyncStream,
    FileBufferNode,
    MAX_SEND_FILE_BUFFER_SIZE,
    MemBufferNode,
    StreamBufferNode,
)


def drain(node):
    out = bytearray()
    while node.remaining_bytes() > 0:
        data = node.get_data()
        if not data:
            break
        out += data
        node.retrieve(len(data))
    return bytes(out)


def test_async_stream_is_abstract():
    with pytest.raises(TypeError):
        AsyncStream()


def test_mem_node_append_and_retrieve():
    node = MemBufferNode()
    node.append(b"hello")
    node.append(bytearray(b" world"))
    assert node.get_data() == b"hello world"
    assert node.remaining_bytes() == len(b"hello world")
    node.retrieve(6)
    assert node.get_data() == b"world"
    assert node.available()


def test_mem_node_done():
    node = MemBufferNode()
    node.append(b"abc")
    node.done()
    assert node.remaining_bytes() == 0
    assert not node.available()


def test_mem_node_flags():
    node = MemBufferNode()
    assert not node.is_file() and not node.is_stream() and not node.is_async()
    assert node.fd() == -1


def test_async_node():
    node = AsyncBufferNode()
    assert node.is_async() and node.is_stream()
    assert node.get_data() == b""
    assert node.remaining_bytes() == 0
    node.append(b"chunk")
    assert node.get_data() == b"chunk"
    node.retrieve(2)
    assert node.remaining_bytes() == len(b"unk")
    assert node.available()
    node.done()
    assert not node.available()


def test_stream_node_pulls_chunks():
    chunks = [b"one", b"two"]
    sizes = []

    def callback(size):
        sizes.append(size)
        if size is None:
            return None
        return chunks.pop(0) if chunks else b""

    node = StreamBufferNode(callback)
    assert node.is_stream()
    assert node.remaining_bytes() == 1
    assert drain(node) == b"onetwo"
    assert node.remaining_bytes() == 0
    assert node.is_done
    assert sizes[0] == 16 * 1024
    assert MAX_SEND_FILE_BUFFER_SIZE == 16 * 1024


def test_stream_node_partial_retrieve_keeps_data():
    node = StreamBufferNode(lambda size: b"abcdef" if size else b"")
    assert node.get_data() == b"abcdef"
    node.retrieve(3)
    assert node.get_data() == b"def"


def test_stream_node_close_cleans_up_once():
    calls = []

    def callback(size):
        calls.append(size)
        return b""

    node = StreamBufferNode(callback)
    assert node.remaining_bytes() == 1
    node.close()
    node.close()
    assert calls == [None]


def test_append_to_stream_node_rejected():
    node = StreamBufferNode(lambda size: b"")
    with pytest.raises(TypeError):
        node.append(b"x")


@pytest.fixture
def data_file(tmp_path):
    content = bytes(range(256)) * 100
    path = tmp_path / "data.bin"
    path.write_bytes(content)
    return path, content


def test_file_node_whole_file(data_file):
    path, content = data_file
    with FileBufferNode(path) as node:
        assert node.is_file()
        assert node.fd() >= 0
        assert node.remaining_bytes() == len(content)
        first = node.get_data()
        assert len(first) == MAX_SEND_FILE_BUFFER_SIZE
        assert drain(node) == content
        assert node.remaining_bytes() == 0


def test_file_node_region(data_file):
    path, content = data_file
    with FileBufferNode(path, 100, 500) as node:
        assert drain(node) == content[100:600]


def test_file_node_offset_to_end(data_file):
    path, content = data_file
    with FileBufferNode(path, 20000) as node:
        assert drain(node) == content[20000:]


def test_file_node_close(data_file):
    path, _ = data_file
    node = FileBufferNode(path)
    assert node.available()
    node.close()
    assert not node.available()
    assert node.fd() == -1


def test_file_node_negative_offset(data_file):
    path, _ = data_file
    with pytest.raises(ValueError):
        FileBufferNode(path, -1)


def test_file_node_offset_past_end(data_file):
    path, content = data_file
    with pytest.raises(ValueError):
        FileBufferNode(path, len(content))


def test_file_node_length_too_long(data_file):
    path, content = data_file
    with pytest.raises(ValueError):
        FileBufferNode(path, 10, len(content))


def test_file_node_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        FileBufferNode(tmp_path / "missing.bin")


def test_file_node_done(data_file):
    path, _ = data_file
    with FileBufferNode(path) as node:
        node.done()
        assert node.remaining_bytes() == 0