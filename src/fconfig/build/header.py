"""Capability header model and C rendering."""

from dataclasses import dataclass, field
from typing import Any, Iterator, Union

HEADER_BANNER = "/* Generated by fconfig. Do not edit. */"
HEADER_GUARD = "FCONFIG_CONFIG_H"

HeaderValue = Union[int, str]


def c_string_literal(text: str) -> str:
    """Quote text as a C string literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def render_value(value: HeaderValue) -> str:
    # bool is an int subclass; emit 1/0 rather than True/False
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    return c_string_literal(value)


@dataclass(frozen=True)
class CapabilityHeader:
    """Ordered mapping of header symbol -> value.

    Attributes:
        entries: (symbol, value) pairs in emission order
        undefined: Symbols of probed-but-missing features, rendered as
            ``/* #undef SYM */`` comments
    """

    entries: tuple[tuple[str, HeaderValue], ...]
    undefined: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for symbol, _value in self.entries:
            if symbol in seen:
                raise ValueError(f"Duplicate header symbol: {symbol}")
            seen.add(symbol)

    def __contains__(self, symbol: object) -> bool:
        return any(s == symbol for s, _ in self.entries)

    def __getitem__(self, symbol: str) -> HeaderValue:
        for s, value in self.entries:
            if s == symbol:
                return value
        raise KeyError(symbol)

    def __iter__(self) -> Iterator[str]:
        return iter(self.symbols)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def symbols(self) -> list[str]:
        return [s for s, _ in self.entries]

    def to_dict(self) -> dict[str, Any]:
        return {"defines": {s: v for s, v in self.entries}, "undefined": list(self.undefined)}

    def render(self) -> str:
        """Render as a C header with an include guard."""
        lines = [HEADER_BANNER, f"#ifndef {HEADER_GUARD}", f"#define {HEADER_GUARD}", ""]
        lines.extend(f"#define {symbol} {render_value(value)}" for symbol, value in self.entries)
        if self.undefined:
            lines.append("")
            lines.extend(f"/* #undef {symbol} */" for symbol in self.undefined)
        lines.append("")
        lines.append(f"#endif /* {HEADER_GUARD} */")
        return "\n".join(lines) + "\n"
