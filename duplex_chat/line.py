import re
from dataclasses import dataclass
from typing import Union


def is_blank(text: str) -> bool:
    """True when ``text`` holds nothing but whitespace."""
    return not text.strip()


@dataclass(frozen=True)
class ChatLine:
    """
    One sender-tagged chat message, written on the wire as ``<sender>: <text>``.
    """

    _LINE_SEP_EXPR = re.compile(r"\r\n|\r|\n")
    DEFAULT_SEPARATOR = "\n"

    TAG_SENDER = ": "

    sender: str
    text: str

    def __post_init__(self) -> None:
        if not self.sender:
            raise ValueError("sender must not be empty")
        if self._LINE_SEP_EXPR.search(self.sender) or self.TAG_SENDER in self.sender:
            raise ValueError(f"invalid sender: {self.sender!r}")
        if self._LINE_SEP_EXPR.search(self.text):
            raise ValueError("chat text must be a single line")

    def __str__(self) -> str:
        return f"{self.sender}{self.TAG_SENDER}{self.text}"

    def encode(self) -> bytes:
        return f"{self}{self.DEFAULT_SEPARATOR}".encode("utf-8")

    @classmethod
    def parse(cls, line: str) -> "ChatLine":
        """Split a received line on its first sender tag."""
        sender, tag, text = line.partition(cls.TAG_SENDER)
        if not tag:
            raise ValueError(f"line carries no sender tag: {line!r}")
        return cls(sender, text)


def ensure_bytes(data: Union[str, ChatLine]) -> bytes:
    if isinstance(data, ChatLine):
        return data.encode()
    if ChatLine._LINE_SEP_EXPR.search(data):
        raise ValueError("chat text must be a single line")
    return f"{data}{ChatLine.DEFAULT_SEPARATOR}".encode("utf-8")
