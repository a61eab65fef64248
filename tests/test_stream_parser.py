import asyncio

from app.utils.stream_parser import StreamLineDecoder, accumulate_stream, extract_fragment

from fakes import iter_chunks, ndjson


def _accumulate(chunks):
    return asyncio.run(accumulate_stream(iter_chunks(chunks)))


# -----------------------------
# Line decoding
# -----------------------------
def test_multibyte_char_split_across_chunks():
    raw = '{"response": "café 東京"}\n'.encode("utf-8")
    split_at = raw.index("é".encode("utf-8")) + 1   # inside the 2-byte é

    decoder = StreamLineDecoder()
    assert decoder.feed(raw[:split_at]) == []
    lines = decoder.feed(raw[split_at:])

    assert lines == ['{"response": "café 東京"}']
    assert decoder.finish() == ""


def test_multibyte_split_every_byte_accumulates_cleanly():
    raw = ndjson("Kyōto ", "→ 大阪")
    chunks = [raw[i:i + 1] for i in range(len(raw))]

    assert _accumulate(chunks) == "Kyōto → 大阪"


def test_incomplete_line_is_carried_over():
    decoder = StreamLineDecoder()
    assert decoder.feed(b'{"response": "Hel') == []
    assert decoder.feed(b'lo"}\n{"resp') == ['{"response": "Hello"}']
    assert decoder.finish() == '{"resp'


# -----------------------------
# Fragment extraction
# -----------------------------
def test_extract_fragment_field_priority():
    assert extract_fragment('{"response": "a", "text": "b"}') == "a"
    assert extract_fragment('{"text": "b", "content": "c"}') == "b"
    assert extract_fragment('{"content": "c"}') == "c"
    assert extract_fragment('{"delta": {"content": "d"}}') == "d"
    assert extract_fragment('{"choices": [{"delta": {"content": "e"}}]}') == "e"


def test_extract_fragment_handles_sse_and_noise():
    assert extract_fragment('data: {"response": "hi"}') == "hi"
    assert extract_fragment("   data:[DONE]  ") is None
    assert extract_fragment("[DONE]") is None
    assert extract_fragment("") is None
    assert extract_fragment("event: message") is None
    assert extract_fragment("not json at all") is None
    assert extract_fragment("[1, 2, 3]") is None
    assert extract_fragment('{"usage": {"tokens": 3}}') is None


# -----------------------------
# Accumulation
# -----------------------------
def test_fragments_accumulate_in_order():
    chunks = [b'{"response":"Hel"}\n', b'{"response":"lo"}\n']
    assert _accumulate(chunks) == "Hello"


def test_done_and_blank_lines_accumulate_to_empty():
    assert _accumulate([b"\n", b"[DONE]\n", b"   \n", b"data: [DONE]\n"]) == ""


def test_final_fragment_without_newline_is_parsed():
    chunks = [b'{"response":"Hi "}\n', b'{"response":"there"}']
    assert _accumulate(chunks) == "Hi there"


def test_malformed_lines_are_skipped():
    chunks = [
        b'data: {"response":"A"}\n\n',
        b"data: {broken\n",
        b": keep-alive comment\n",
        b'data: {"response":"B"}\n\n',
        b"data: [DONE]\n\n",
    ]
    assert _accumulate(chunks) == "AB"
