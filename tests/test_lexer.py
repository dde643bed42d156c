"""
Tests for the lexer and preprocessor.

Tests cover:
  - Keywords, identifiers, operators (longest match)
  - Integer literals (decimal/hex/octal/binary) and suffixes
  - Floating, char and string literals with escapes
  - Comments and source positions
  - #define / #include handling and predefined macros
  - Error reporting
"""

import pytest

from cmemsim.lexer import Lexer, LexerError, Preprocessor, TokenType


def _types(code: str) -> list:
    return [t.type for t in Lexer(code).tokenize()][:-1]


def _values(code: str) -> list:
    return [t.value for t in Lexer(code).tokenize()][:-1]


# ─── Tokens ─────────────────────────────────

class TestTokens:
    def test_declaration(self):
        assert _types("unsigned int x;") == [
            TokenType.KW_UNSIGNED, TokenType.KW_INT, TokenType.IDENT, TokenType.SEMI,
        ]

    def test_ends_with_eof(self):
        tokens = Lexer("").tokenize()
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_longest_match_operators(self):
        assert _types("a <<= b >> c->d ...") == [
            TokenType.IDENT, TokenType.LSHIFT_ASSIGN, TokenType.IDENT, TokenType.RSHIFT,
            TokenType.IDENT, TokenType.ARROW, TokenType.IDENT, TokenType.ELLIPSIS,
        ]

    def test_increment_vs_plus(self):
        assert _types("i+++j") == [TokenType.IDENT, TokenType.INC, TokenType.PLUS,
                                   TokenType.IDENT]

    def test_positions(self):
        tokens = Lexer("int\n  x;").tokenize()
        assert (tokens[1].line, tokens[1].col) == (2, 3)

    def test_comments_skipped(self):
        assert _values("a /* b */ // c\n d") == ["a", "d"]


# ─── Literals ───────────────────────────────

class TestLiterals:
    @pytest.mark.parametrize("text,value", [
        ("42", 42), ("0x2A", 42), ("052", 42), ("0b101010", 42), ("0", 0),
    ])
    def test_integer_bases(self, text, value):
        tok = Lexer(text).tokenize()[0]
        assert tok.type == TokenType.INT_LITERAL
        assert tok.value == value

    def test_integer_suffix(self):
        tok = Lexer("10UL").tokenize()[0]
        assert tok.value == 10
        assert tok.suffix == "ul"

    def test_float(self):
        tokens = Lexer("1.5 .25 2e3 1.0f").tokenize()
        assert [t.value for t in tokens[:-1]] == [1.5, 0.25, 2000.0, 1.0]
        assert all(t.type == TokenType.FLOAT_LITERAL for t in tokens[:-1])
        assert tokens[3].suffix == "f"

    def test_char_escapes(self):
        assert _values(r"'a' '\n' '\0' '\x41' '\101'") == [97, 10, 0, 65, 65]

    def test_string_escapes(self):
        assert _values(r'"a\tb\n"') == ["a\tb\n"]

    def test_bad_octal(self):
        with pytest.raises(LexerError, match="octal"):
            Lexer("09").tokenize()

    def test_unterminated_string(self):
        with pytest.raises(LexerError, match="Unterminated string"):
            Lexer('"abc\n"').tokenize()

    def test_unexpected_character(self):
        with pytest.raises(LexerError, match="L1:3"):
            Lexer("a @").tokenize()


# ─── Preprocessor ───────────────────────────

class TestPreprocessor:
    def test_define_substitution(self):
        assert _values("#define SIZE 4\nint a[SIZE];") == ["int", "a", "[", 4, "]", ";"]

    def test_line_numbers_preserved(self):
        tokens = Lexer("#include <stdio.h>\n#define N 1\nint x;").tokenize()
        assert tokens[0].line == 3

    def test_null_is_predefined(self):
        assert "((void *)0)" in Preprocessor("p = NULL;").process()

    def test_strings_are_not_substituted(self):
        assert _values('#define X 1\n"X"') == ["X"]

    def test_undef(self):
        assert _values("#define X 1\n#undef X\nX") == ["X"]
