import base64
import unittest

from agent.stream_codec import FrameDecoder, SSELineBuffer, StreamCodec, sse_data


class TestStreamCodec(unittest.TestCase):
    def setUp(self):
        self.codec = StreamCodec("test-key")

    def test_frame_shape(self):
        frame = self.codec.encode_event({"type": "content", "content": "hi"})
        self.assertTrue(frame.startswith("data: "))
        self.assertTrue(frame.endswith("\n\n"))
        self.assertNotIn("hi", frame)

    def test_payload_is_obfuscated_not_plain_base64(self):
        payload = self.codec.conceal('{"type": "content"}')
        self.assertNotEqual(base64.b64decode(payload), b'{"type": "content"}')
        self.assertEqual(self.codec.reveal(payload), '{"type": "content"}')

    def test_short_key_is_padded_to_32_bytes(self):
        # Same first bytes, padding with '0' means these keys are equivalent.
        a = StreamCodec("abc")
        b = StreamCodec("abc" + "0" * 29)
        self.assertEqual(a.conceal("hello"), b.conceal("hello"))

    def test_sentinel_decodes_as_end_of_stream(self):
        payload = sse_data(self.codec.encode_done().strip())
        self.assertEqual(self.codec.decode_payload(payload), "[DONE]")

    def test_malformed_payloads_are_skipped(self):
        self.assertIsNone(self.codec.decode_payload("%%% not base64 %%%"))
        self.assertIsNone(self.codec.decode_payload(self.codec.conceal("not json")))
        self.assertIsNone(self.codec.decode_payload(self.codec.conceal("[1, 2]")))

    def test_obfuscation_can_be_disabled(self):
        codec = StreamCodec("k", obfuscate=False)
        frame = codec.encode_event({"type": "done"})
        self.assertEqual(frame, 'data: {"type": "done"}\n\n')


class TestFrameDecoder(unittest.TestCase):
    def setUp(self):
        self.codec = StreamCodec("test-key")

    def _stream(self, *events) -> str:
        return "".join(self.codec.encode_event(e) for e in events) + self.codec.encode_done()

    def test_decodes_frames_split_at_every_byte(self):
        raw = self._stream({"type": "content", "content": "a"}, {"type": "content", "content": "b"})
        decoder = FrameDecoder(self.codec)
        events = []
        for ch in raw:
            events.extend(decoder.feed(ch))
        self.assertEqual([e["content"] for e in events], ["a", "b"])
        self.assertTrue(decoder.done)

    def test_stops_reading_after_sentinel(self):
        raw = self._stream({"type": "content", "content": "a"})
        raw += self.codec.encode_event({"type": "content", "content": "late"})
        decoder = FrameDecoder(self.codec)
        events = decoder.feed(raw)
        self.assertEqual(len(events), 1)
        self.assertEqual(decoder.feed(self.codec.encode_event({"type": "x"})), [])

    def test_garbage_frame_does_not_break_stream(self):
        raw = "data: !!!garbage\n\n" + self._stream({"type": "content", "content": "ok"})
        decoder = FrameDecoder(self.codec)
        events = decoder.feed(raw.encode("utf-8"))
        self.assertEqual(events, [{"type": "content", "content": "ok"}])

    def test_non_data_lines_are_ignored(self):
        raw = ": keepalive\n\nevent: ping\n" + self._stream({"type": "done", "content": ""})
        events = FrameDecoder(self.codec).feed(raw)
        self.assertEqual(events, [{"type": "done", "content": ""}])


def test_line_buffer_holds_partial_line():
    buf = SSELineBuffer()
    assert buf.feed("data: a\ndata: b") == ["data: a"]
    assert buf.pending == "data: b"
    assert buf.feed("c\r\n") == ["data: bc"]
    assert buf.flush() == ""


def test_line_buffer_keeps_characters_split_across_reads():
    raw = 'data: {"x": "é☃"}\n'.encode("utf-8")
    for cut in range(1, len(raw)):
        buf = SSELineBuffer()
        assert buf.feed(raw[:cut]) + buf.feed(raw[cut:]) == ['data: {"x": "é☃"}']


def test_frame_decoder_handles_split_plain_frames():
    codec = StreamCodec("k", obfuscate=False)
    raw = ('data: {"type": "content", "content": "naïve"}\n\n' + codec.encode_done()).encode("utf-8")
    cut = raw.index("ï".encode("utf-8")) + 1
    decoder = FrameDecoder(codec)
    events = decoder.feed(raw[:cut]) + decoder.feed(raw[cut:])
    assert events == [{"type": "content", "content": "naïve"}]
