"""
Tests for the semantic analyzer.

Tests cover:
  - Clean programs and the main() requirement
  - Error isolation: only the faulty construct is abandoned
  - Redeclaration, undeclared identifiers, type mismatches
  - Warnings: uninitialized reads, pointer mismatches, missing returns
  - Loop/switch context checks, goto labels, unsupported features
  - Prototypes and function signatures
  - Side tables consumed by the interpreter
"""

import pytest

from cmemsim.ast_nodes import SizeofExpr
from cmemsim.diagnostics import Diagnostics, WarningKind
from cmemsim.lexer import Lexer
from cmemsim.parser import Parser
from cmemsim.semantic import SemanticAnalyzer


def _analyze(code: str):
    program = Parser(Lexer(code).tokenize(), code).parse()
    diagnostics = Diagnostics()
    result = SemanticAnalyzer(diagnostics).analyze(program)
    return program, result, diagnostics


def _errors(code: str) -> list:
    return [e.kind for e in _analyze(code)[2].errors]


def _warnings(code: str, kind: WarningKind) -> list:
    return _analyze(code)[2].warnings_of(kind)


# ─── Whole programs ─────────────────────────

class TestPrograms:
    def test_clean_program(self):
        _program, result, diags = _analyze("""
            int square(int n) { return n * n; }
            int main() { int x = 5; return square(x); }
        """)
        assert result.ok
        assert len(diags) == 0

    def test_missing_main(self):
        _program, result, diags = _analyze("int f() { return 1; }")
        assert not result.has_main
        assert "undefined reference to 'main'" in diags.errors[0].message

    def test_error_abandons_only_its_function(self):
        program, result, diags = _analyze("""
            int broken() { return missing; }
            int main() { return 0; }
        """)
        broken, main = program.items
        assert broken in result.failed
        assert main not in result.failed
        assert [e.kind for e in diags.errors] == ["UNDECLARED"]
        assert diags.errors[0].line == 2

    def test_failed_global_declaration(self):
        program, result, _diags = _analyze("int a = b; int main() { return 0; }")
        assert program.items[0] in result.failed
        assert result.has_main


# ─── Errors ─────────────────────────────────

class TestErrors:
    def test_redeclaration_in_same_scope(self):
        assert _errors("int main() { int x; int x; return 0; }") == ["REDECLARATION"]

    def test_shadowing_in_inner_block(self):
        assert _errors("int main() { int x = 1; { int x = 2; } return x; }") == []

    def test_float_to_pointer(self):
        assert _errors("int main() { int *p = 1.5; return 0; }") == ["TYPE_MISMATCH"]

    def test_void_value_used(self):
        assert _errors("void f() {} int main() { int x = f(); return x; }") == ["TYPE_MISMATCH"]

    def test_assignment_to_const(self):
        assert _errors("int main() { const int k = 1; k = 2; return k; }") == ["SEMANTIC"]

    def test_assignment_to_array(self):
        assert _errors("int main() { int a[2]; int b[2]; a = b; return 0; }") == ["SEMANTIC"]

    def test_too_few_arguments(self):
        assert _errors("int f(int a) { return a; } int main() { return f(); }") == ["SEMANTIC"]

    def test_break_outside_loop(self):
        assert _errors("int main() { break; return 0; }") == ["SEMANTIC"]

    def test_continue_in_switch_only(self):
        code = "int main() { switch (1) { case 1: continue; } return 0; }"
        assert _errors(code) == ["SEMANTIC"]

    def test_duplicate_case(self):
        code = "int main() { switch (1) { case 1: break; case 1: break; } return 0; }"
        assert _errors(code) == ["SEMANTIC"]

    def test_enum_constants_in_cases(self):
        code = """
            enum color { RED, GREEN = 4, BLUE };
            int main() {
                switch (BLUE) { case RED: return 0; case BLUE: return 5; }
                return 1;
            }
        """
        assert _errors(code) == []

    def test_string_too_long(self):
        assert _errors('int main() { char s[2] = "abc"; return 0; }') == ["SEMANTIC"]

    def test_goto_to_enclosing_labels(self):
        code = """
            int main() {
                int i = 0;
            again:
                i++;
                { if (i > 5) goto done; }
                if (i < 3) goto again;
            done:
                return i;
            }
        """
        assert _errors(code) == []

    def test_goto_undefined_label(self):
        _program, _result, diags = _analyze("int main() { goto nowhere; return 0; }")
        assert [e.kind for e in diags.errors] == ["SEMANTIC"]
        assert "'nowhere'" in diags.errors[0].message

    def test_duplicate_label(self):
        assert _errors("int main() { a: return 1; a: return 0; }") == ["SEMANTIC"]

    def test_labels_are_per_function(self):
        code = "void f() { end: return; } int main() { goto end; return 0; }"
        assert _errors(code) == ["SEMANTIC"]

    @pytest.mark.parametrize("code", [
        "struct p { int x; }; int main() { struct p v; return 0; }",
        "int main() { goto inner; { inner: return 1; } return 0; }",
        "int f(int a) { return a; } int main() { int (*fp)(int) = f; return 0; }",
        "extern int e; int main() { return 0; }",
        "int main() { int n = 3; int a[n]; return 0; }",
    ])
    def test_unsupported_features(self, code):
        assert _errors(code) == ["NOT_SUPPORTED"]


# ─── Warnings ───────────────────────────────

class TestWarnings:
    def test_uninitialized_read_warns_once(self):
        code = "int main() { int x; int y = x + x; return y; }"
        warnings = _warnings(code, WarningKind.UNINITIALIZED)
        assert len(warnings) == 1
        assert "'x'" in warnings[0].message

    def test_assignment_initializes(self):
        code = "int main() { int x; x = 3; return x; }"
        assert _warnings(code, WarningKind.UNINITIALIZED) == []

    def test_address_of_and_sizeof_do_not_read(self):
        code = "int main() { int x; int *p = &x; int n = sizeof x; return n; }"
        assert _warnings(code, WarningKind.UNINITIALIZED) == []

    def test_globals_and_statics_are_zeroed(self):
        code = "int g; int main() { static int s; return g + s; }"
        assert _warnings(code, WarningKind.UNINITIALIZED) == []

    def test_integer_to_pointer(self):
        warnings = _warnings("int main() { int *p = 5; return 0; }",
                             WarningKind.POINTER_MISMATCH)
        assert len(warnings) == 1

    def test_null_constant_is_fine(self):
        code = "int main() { int *p = 0; char *q = NULL; return 0; }"
        assert _warnings(code, WarningKind.POINTER_MISMATCH) == []

    def test_incompatible_pointer(self):
        code = "int main() { int x = 1; char *p = &x; return 0; }"
        assert len(_warnings(code, WarningKind.POINTER_MISMATCH)) == 1

    def test_void_pointer_converts_freely(self):
        code = "int main() { int *p = malloc(4); void *v = p; free(v); return 0; }"
        assert _warnings(code, WarningKind.POINTER_MISMATCH) == []

    def test_pointer_to_integer(self):
        code = "int main() { int x = 1; int n = &x; return 0; }"
        assert len(_warnings(code, WarningKind.POINTER_MISMATCH)) == 1

    def test_missing_return(self):
        code = "int f(int a) { if (a) return 1; } int main() { return f(1); }"
        warnings = _warnings(code, WarningKind.RETURN_TYPE)
        assert len(warnings) == 1
        assert "'f'" in warnings[0].message

    def test_if_else_both_return(self):
        code = "int f(int a) { if (a) return 1; else return 2; } int main() { return f(1); }"
        assert _warnings(code, WarningKind.RETURN_TYPE) == []

    def test_main_may_fall_off(self):
        assert _warnings("int main() { }", WarningKind.RETURN_TYPE) == []

    def test_return_without_value(self):
        code = "int f() { return; } int main() { return f(); }"
        assert len(_warnings(code, WarningKind.RETURN_TYPE)) == 1


# ─── Functions ──────────────────────────────

class TestFunctions:
    def test_prototype_then_definition(self):
        code = """
            int twice(int n);
            int main() { return twice(2); }
            int twice(int n) { return 2 * n; }
        """
        assert _errors(code) == []

    def test_conflicting_prototype(self):
        code = "int f(int a); char f(int a) { return 'a'; } int main() { return 0; }"
        _program, _result, diags = _analyze(code)
        assert "conflicting types for 'f'" in diags.errors[0].message

    def test_declared_never_defined(self):
        code = "int ghost(void); int main() { return 0; }"
        _program, _result, diags = _analyze(code)
        assert "never defined" in diags.errors[0].message

    def test_redefining_a_native(self):
        code = "int puts(const char *s) { return 0; } int main() { return 0; }"
        assert _errors(code) == ["REDECLARATION"]

    def test_variadic_native(self):
        assert _errors('int main() { printf("%d %d\\n", 1, 2); return 0; }') == []


# ─── Side tables ────────────────────────────

class TestSideTables:
    def test_sizeof_values_are_recorded(self):
        program, result, _diags = _analyze(
            "int main() { int a[5]; return sizeof(a) + sizeof(char *); }")
        sizes = sorted(result.constants[node] for node in result.constants
                       if isinstance(node, SizeofExpr))
        assert sizes == [4, 20]

    def test_declaration_types(self):
        program, result, _diags = _analyze('char msg[] = "hey"; int main() { return 0; }')
        assert result.decl_types[program.items[0]].array_dims == (4,)

    def test_parameters_decay(self):
        program, result, _diags = _analyze(
            "int first(int a[]) { return a[0]; } int main() { return 0; }")
        (name, ctype), = result.params[program.items[0]]
        assert name == "a"
        assert ctype.is_pointer
