import pytest

from duplex_chat.line import ChatLine, ensure_bytes, is_blank


def test_chat_line_wire_form():
    line = ChatLine("user1", "hello")
    assert str(line) == "user1: hello"
    assert line.encode() == b"user1: hello\n"


def test_chat_line_encodes_utf8():
    assert ChatLine("user2", "grüße ✓").encode() == "user2: grüße ✓\n".encode("utf-8")


@pytest.mark.parametrize("text", ["two\nlines", "cr\rline", "crlf\r\nline"])
def test_chat_line_rejects_embedded_newlines(text):
    with pytest.raises(ValueError, match="single line"):
        ChatLine("user1", text)


@pytest.mark.parametrize("sender", ["", "a: b", "user\n1"])
def test_chat_line_rejects_bad_sender(sender):
    with pytest.raises(ValueError):
        ChatLine(sender, "hello")


def test_parse_splits_on_first_tag():
    line = ChatLine.parse("user1: note: it works")
    assert line == ChatLine("user1", "note: it works")


def test_parse_without_tag():
    with pytest.raises(ValueError, match="no sender tag"):
        ChatLine.parse("just text")


@pytest.mark.parametrize(
    "text,expected",
    [("", True), ("   ", True), ("\t ", True), ("hi", False), ("  hi  ", False)],
)
def test_is_blank(text, expected):
    assert is_blank(text) is expected


def test_ensure_bytes():
    assert ensure_bytes("user1: hi") == b"user1: hi\n"
    assert ensure_bytes(ChatLine("user1", "hi")) == b"user1: hi\n"
    with pytest.raises(ValueError):
        ensure_bytes("a\nb")
