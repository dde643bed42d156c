"""
Lexer / Tokenizer for the cmemsim C interpreter.

Converts C source text into a stream of tokens for the parser.
Handles C keywords, identifiers, integer literals (decimal, hex, binary, octal),
floating literals, character and string literals, operators, and punctuation.

Includes a minimal preprocessor pass that resolves object-like #define
constants and strips #include and conditional lines, so that teaching
programs which start with ``#include <stdio.h>`` run unchanged.
"""

from __future__ import annotations
import enum
import re
from dataclasses import dataclass
from typing import List, Dict


# ──────────────────────────────────────────────
# Token types
# ──────────────────────────────────────────────

class TokenType(enum.Enum):
    # Literals
    INT_LITERAL = "INT_LITERAL"
    FLOAT_LITERAL = "FLOAT_LITERAL"
    CHAR_LITERAL = "CHAR_LITERAL"
    STRING_LITERAL = "STRING_LITERAL"

    # Identifier
    IDENT = "IDENT"

    # Type keywords
    KW_VOID = "void"
    KW_BOOL = "_Bool"
    KW_CHAR = "char"
    KW_SHORT = "short"
    KW_INT = "int"
    KW_LONG = "long"
    KW_FLOAT = "float"
    KW_DOUBLE = "double"
    KW_UNSIGNED = "unsigned"
    KW_SIGNED = "signed"
    KW_VOLATILE = "volatile"
    KW_CONST = "const"
    KW_STRUCT = "struct"
    KW_UNION = "union"
    KW_ENUM = "enum"

    # Storage classes
    KW_STATIC = "static"
    KW_EXTERN = "extern"
    KW_REGISTER = "register"
    KW_AUTO = "auto"
    KW_TYPEDEF = "typedef"

    # Statements
    KW_IF = "if"
    KW_ELSE = "else"
    KW_SWITCH = "switch"
    KW_CASE = "case"
    KW_DEFAULT = "default"
    KW_WHILE = "while"
    KW_FOR = "for"
    KW_DO = "do"
    KW_GOTO = "goto"
    KW_RETURN = "return"
    KW_BREAK = "break"
    KW_CONTINUE = "continue"
    KW_SIZEOF = "sizeof"

    # Operators
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    PERCENT = "%"
    AMP = "&"
    PIPE = "|"
    CARET = "^"
    TILDE = "~"
    LSHIFT = "<<"
    RSHIFT = ">>"
    BANG = "!"
    ASSIGN = "="
    PLUS_ASSIGN = "+="
    MINUS_ASSIGN = "-="
    STAR_ASSIGN = "*="
    SLASH_ASSIGN = "/="
    PERCENT_ASSIGN = "%="
    AMP_ASSIGN = "&="
    PIPE_ASSIGN = "|="
    CARET_ASSIGN = "^="
    LSHIFT_ASSIGN = "<<="
    RSHIFT_ASSIGN = ">>="
    EQ = "=="
    NEQ = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    AND = "&&"
    OR = "||"
    INC = "++"
    DEC = "--"
    ARROW = "->"
    DOT = "."

    # Punctuation
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    SEMI = ";"
    COMMA = ","
    COLON = ":"
    QUESTION = "?"
    ELLIPSIS = "..."

    # Special
    EOF = "EOF"


# ──────────────────────────────────────────────
# Token data class
# ──────────────────────────────────────────────

@dataclass
class Token:
    type: TokenType
    value: str | int | float
    line: int
    col: int
    suffix: str = ""        # numeric literal suffix, lower-cased ("u", "l", "ul", "f")

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.col})"


# ──────────────────────────────────────────────
# Keyword map
# ──────────────────────────────────────────────

KEYWORDS: Dict[str, TokenType] = {
    tt.value: tt for tt in TokenType if tt.name.startswith("KW_")
}


# ──────────────────────────────────────────────
# Multi-char operator table (longest match first)
# ──────────────────────────────────────────────

MULTI_CHAR_OPS = [
    ("<<=", TokenType.LSHIFT_ASSIGN),
    (">>=", TokenType.RSHIFT_ASSIGN),
    ("...", TokenType.ELLIPSIS),
    ("<<", TokenType.LSHIFT),
    (">>", TokenType.RSHIFT),
    ("<=", TokenType.LE),
    (">=", TokenType.GE),
    ("==", TokenType.EQ),
    ("!=", TokenType.NEQ),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("+=", TokenType.PLUS_ASSIGN),
    ("-=", TokenType.MINUS_ASSIGN),
    ("*=", TokenType.STAR_ASSIGN),
    ("/=", TokenType.SLASH_ASSIGN),
    ("%=", TokenType.PERCENT_ASSIGN),
    ("&=", TokenType.AMP_ASSIGN),
    ("|=", TokenType.PIPE_ASSIGN),
    ("^=", TokenType.CARET_ASSIGN),
    ("++", TokenType.INC),
    ("--", TokenType.DEC),
    ("->", TokenType.ARROW),
]

SINGLE_CHAR_OPS: Dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.PERCENT,
    "&": TokenType.AMP,
    "|": TokenType.PIPE,
    "^": TokenType.CARET,
    "~": TokenType.TILDE,
    "!": TokenType.BANG,
    "=": TokenType.ASSIGN,
    "<": TokenType.LT,
    ">": TokenType.GT,
    ".": TokenType.DOT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ";": TokenType.SEMI,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    "?": TokenType.QUESTION,
}

SIMPLE_ESCAPES = {
    "n": 10, "r": 13, "t": 9, "0": 0, "a": 7, "b": 8, "f": 12, "v": 11,
    "\\": 92, "'": 39, '"': 34, "?": 63,
}


# ──────────────────────────────────────────────
# Minimal Preprocessor
# ──────────────────────────────────────────────

# Names the standard headers would have provided.
PREDEFINED_MACROS: Dict[str, str] = {
    "NULL": "((void *)0)",
    "EXIT_SUCCESS": "0",
    "EXIT_FAILURE": "1",
    "true": "1",
    "false": "0",
    "bool": "_Bool",
}

# Source split into string/char literals (odd indices) and everything else.
_LITERAL_SPLIT = re.compile(r'("(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\')')


class Preprocessor:
    """Resolve object-like #define macros and strip #include / conditional lines."""

    def __init__(self, source: str):
        self.source = source
        self.defines: Dict[str, str] = dict(PREDEFINED_MACROS)

    def _substitute(self, line: str) -> str:
        parts = _LITERAL_SPLIT.split(line)
        for i in range(0, len(parts), 2):
            for name, value in self.defines.items():
                parts[i] = re.sub(rf'\b{re.escape(name)}\b', lambda _m, v=value: v, parts[i])
        return "".join(parts)

    def process(self) -> str:
        out_lines: List[str] = []
        for line in self.source.splitlines():
            stripped = line.strip()

            # #define NAME value
            m = re.match(r'#\s*define\s+(\w+)\s+(.*)', stripped)
            if m:
                name, value = m.group(1), m.group(2).strip()
                self.defines[name] = self._substitute(value)
                out_lines.append("")  # keep line numbering
                continue

            # #define NAME (no value) -> treat as 1
            m = re.match(r'#\s*define\s+(\w+)\s*$', stripped)
            if m:
                self.defines[m.group(1)] = "1"
                out_lines.append("")
                continue

            m = re.match(r'#\s*undef\s+(\w+)', stripped)
            if m:
                self.defines.pop(m.group(1), None)
                out_lines.append("")
                continue

            # #include, include guards and #pragma are dropped
            if re.match(r'#\s*(include|ifndef|ifdef|endif|else|if|elif|pragma|error|line)\b', stripped):
                out_lines.append("")
                continue

            out_lines.append(self._substitute(line))

        return "\n".join(out_lines)


# ──────────────────────────────────────────────
# Lexer
# ──────────────────────────────────────────────

class LexerError(Exception):
    def __init__(self, message: str, line: int, col: int):
        self.line = line
        self.col = col
        super().__init__(f"Lexer error at L{line}:{col}: {message}")


class Lexer:
    """Tokenizes preprocessed C source into a list of Tokens."""

    def __init__(self, source: str, preprocess: bool = True):
        if preprocess:
            pp = Preprocessor(source)
            self.source = pp.process()
            self.defines = pp.defines
        else:
            self.source = source
            self.defines = {}
        self.pos = 0
        self.line = 1
        self.col = 1
        self.tokens: List[Token] = []

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.source[i] if i < len(self.source) else "\0"

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _skip_whitespace(self):
        while self.pos < len(self.source) and self.source[self.pos] in " \t\r\n\f\v":
            self._advance()

    def _skip_line_comment(self):
        while self.pos < len(self.source) and self.source[self.pos] != "\n":
            self._advance()

    def _skip_block_comment(self):
        start_line, start_col = self.line, self.col
        while self.pos < len(self.source) - 1:
            if self.source[self.pos] == "*" and self.source[self.pos + 1] == "/":
                self._advance()  # *
                self._advance()  # /
                return
            self._advance()
        raise LexerError("Unterminated block comment", start_line, start_col)

    def _read_suffix(self, letters: str) -> str:
        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos] in letters:
            self._advance()
        return self.source[start:self.pos].lower()

    def _read_number(self) -> Token:
        start_line, start_col = self.line, self.col
        start_pos = self.pos
        src = self.source

        # Hex: 0x...
        if src[self.pos] == "0" and self._peek(1) in "xX":
            self._advance()  # '0'
            self._advance()  # 'x'
            while self.pos < len(src) and src[self.pos] in "0123456789abcdefABCDEF":
                self._advance()
            text = src[start_pos + 2:self.pos]
            if not text:
                raise LexerError("Hex literal has no digits", start_line, start_col)
            suffix = self._read_suffix("uUlL")
            return Token(TokenType.INT_LITERAL, int(text, 16), start_line, start_col, suffix)

        # Binary: 0b... (GNU extension)
        if src[self.pos] == "0" and self._peek(1) in "bB":
            self._advance()  # '0'
            self._advance()  # 'b'
            while self.pos < len(src) and src[self.pos] in "01":
                self._advance()
            text = src[start_pos + 2:self.pos]
            suffix = self._read_suffix("uUlL")
            return Token(TokenType.INT_LITERAL, int(text or "0", 2), start_line, start_col, suffix)

        # Decimal digits, possibly the integer part of a floating literal
        while self.pos < len(src) and src[self.pos].isdigit():
            self._advance()

        is_float = False
        if self._peek() == ".":
            is_float = True
            self._advance()
            while self.pos < len(src) and src[self.pos].isdigit():
                self._advance()
        if self._peek() in "eE" and (self._peek(1).isdigit() or
                                     (self._peek(1) in "+-" and self._peek(2).isdigit())):
            is_float = True
            self._advance()  # e
            if self._peek() in "+-":
                self._advance()
            while self.pos < len(src) and src[self.pos].isdigit():
                self._advance()

        text = src[start_pos:self.pos]
        if is_float:
            suffix = self._read_suffix("fFlL")
            return Token(TokenType.FLOAT_LITERAL, float(text), start_line, start_col, suffix)

        suffix = self._read_suffix("uUlL")
        # Octal: leading zero
        if len(text) > 1 and text[0] == "0":
            if any(c in "89" for c in text):
                raise LexerError(f"Invalid digit in octal literal {text!r}", start_line, start_col)
            return Token(TokenType.INT_LITERAL, int(text, 8), start_line, start_col, suffix)
        return Token(TokenType.INT_LITERAL, int(text), start_line, start_col, suffix)

    def _read_escape(self) -> int:
        """Read the escape sequence after a backslash and return its code."""
        esc = self._advance()
        if esc == "x":
            start = self.pos
            while self._peek() in "0123456789abcdefABCDEF":
                self._advance()
            digits = self.source[start:self.pos]
            if not digits:
                raise LexerError("\\x used with no following hex digits", self.line, self.col)
            return int(digits, 16) & 0xFF
        if esc in "01234567":
            digits = esc
            while len(digits) < 3 and self._peek() in "01234567":
                digits += self._advance()
            return int(digits, 8) & 0xFF
        return SIMPLE_ESCAPES.get(esc, ord(esc))

    def _read_char_literal(self) -> Token:
        start_line, start_col = self.line, self.col
        self._advance()  # opening '
        if self._peek() == "\\":
            self._advance()  # backslash
            value = self._read_escape()
        elif self._peek() in "'\n\0":
            raise LexerError("Empty character literal", start_line, start_col)
        else:
            value = ord(self._advance())

        if self._peek() != "'":
            raise LexerError("Unterminated character literal", self.line, self.col)
        self._advance()  # closing '
        return Token(TokenType.CHAR_LITERAL, value, start_line, start_col)

    def _read_string_literal(self) -> Token:
        start_line, start_col = self.line, self.col
        self._advance()  # opening "
        chars: List[str] = []
        while self.pos < len(self.source) and self._peek() not in '"\n':
            if self._peek() == "\\":
                self._advance()
                chars.append(chr(self._read_escape()))
            else:
                chars.append(self._advance())
        if self.pos >= len(self.source) or self._peek() == "\n":
            raise LexerError("Unterminated string literal", start_line, start_col)
        self._advance()  # closing "
        return Token(TokenType.STRING_LITERAL, "".join(chars), start_line, start_col)

    def _read_identifier_or_keyword(self) -> Token:
        start_line, start_col = self.line, self.col
        start_pos = self.pos

        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] == "_"):
            self._advance()

        text = self.source[start_pos:self.pos]
        if text in KEYWORDS:
            return Token(KEYWORDS[text], text, start_line, start_col)

        return Token(TokenType.IDENT, text, start_line, start_col)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source and return a list of tokens."""
        self.tokens = []

        while self.pos < len(self.source):
            self._skip_whitespace()
            if self.pos >= len(self.source):
                break

            ch = self._peek()

            # Line comment
            if ch == "/" and self._peek(1) == "/":
                self._skip_line_comment()
                continue

            # Block comment
            if ch == "/" and self._peek(1) == "*":
                self._advance()
                self._advance()
                self._skip_block_comment()
                continue

            # Preprocessor lines that survived preprocessing
            if ch == "#":
                self._skip_line_comment()
                continue

            # Number (including ".5" style floats)
            if ch.isdigit() or (ch == "." and self._peek(1).isdigit()):
                self.tokens.append(self._read_number())
                continue

            # Character literal
            if ch == "'":
                self.tokens.append(self._read_char_literal())
                continue

            # String literal
            if ch == '"':
                self.tokens.append(self._read_string_literal())
                continue

            # Identifier or keyword
            if ch.isalpha() or ch == "_":
                self.tokens.append(self._read_identifier_or_keyword())
                continue

            # Multi-character operators
            matched = False
            for op_str, op_type in MULTI_CHAR_OPS:
                if self.source[self.pos:self.pos + len(op_str)] == op_str:
                    start_line, start_col = self.line, self.col
                    for _ in op_str:
                        self._advance()
                    self.tokens.append(Token(op_type, op_str, start_line, start_col))
                    matched = True
                    break

            if matched:
                continue

            # Single-character operators and punctuation
            if ch in SINGLE_CHAR_OPS:
                start_line, start_col = self.line, self.col
                self._advance()
                self.tokens.append(Token(SINGLE_CHAR_OPS[ch], ch, start_line, start_col))
                continue

            # Unknown character
            raise LexerError(f"Unexpected character: {ch!r}", self.line, self.col)

        self.tokens.append(Token(TokenType.EOF, "", self.line, self.col))
        return self.tokens
