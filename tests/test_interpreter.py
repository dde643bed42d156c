"""
Test suite for the cmemsim interpreter.

Tests cover:
  - Walkthrough scenarios (locals, overflow, recursion, pointer references)
  - Arithmetic: integer division/modulo, unsigned wrap, floats, shifts
  - Control flow (if, loops, break/continue, switch fall-through, goto)
  - Pointers and arrays (pointer arithmetic, subscripts, strings)
  - Natives: printf, puts, putchar, strlen, malloc/calloc/free
  - Heap diagnostics (leaks, double free, use after free)
  - Runtime errors stop the run and leave state inspectable
  - Step/run protocol, step budget, snapshots
"""

import pytest

from cmemsim import run_source
from cmemsim.diagnostics import WarningKind
from cmemsim.errors import InternalError
from cmemsim.interpreter import ExecutionState, Interpreter, StopReason
from cmemsim.lexer import LexerError
from cmemsim.memory import Region
from cmemsim.parser import ParseError


def _run(code: str, **kwargs) -> Interpreter:
    """Run a program to completion and return the interpreter."""
    return run_source(code, **kwargs)


def _exit(code: str) -> int:
    interp = _run(code)
    assert interp.stop_reason is StopReason.RETURNED, interp.diagnostics.format_report()
    return interp.exit_code


def _run_until_line(code: str, line: int) -> Interpreter:
    """Step until execution pauses before the statement on ``line``."""
    interp = Interpreter()
    interp.parse(code)
    while interp.step() is None:
        if interp.current_line == line:
            return interp
    raise AssertionError(f"execution never reached line {line}: {interp.stop_reason}")


# ─── Walkthrough scenarios ──────────────────

class TestScenarios:
    def test_locals_sum(self):
        code = (
            "int main() {\n"
            "    int x = 5;\n"
            "    int y = 3;\n"
            "    int sum = x + y;\n"
            "    return sum;\n"
            "}\n"
        )
        interp = _run_until_line(code, 5)
        assert interp.snapshot().find("sum").value == 8
        interp.run()
        assert interp.exit_code == 8
        assert len(interp.diagnostics) == 0

    def test_unsigned_char_overflow(self):
        code = (
            "int main() {\n"
            "    unsigned char overflow = 256;\n"
            "    return overflow;\n"
            "}\n"
        )
        interp = _run_until_line(code, 3)
        assert interp.snapshot().find("overflow").value == 0
        warnings = interp.diagnostics.warnings_of(WarningKind.OVERFLOW)
        assert len(warnings) == 1
        assert warnings[0].line == 2
        interp.run()
        assert interp.exit_code == 0
        assert len(interp.diagnostics.warnings_of(WarningKind.OVERFLOW)) == 1

    def test_recursive_factorial(self):
        interp = _run("""
            int factorial(int n) {
                if (n <= 1) return 1;
                return n * factorial(n - 1);
            }
            int main() { return factorial(5); }
        """)
        assert interp.stop_reason is StopReason.RETURNED
        assert interp.exit_code == 120
        assert interp.call_stack.function_frames() == []
        assert len(interp.call_stack) == 1
        assert interp.memory.stack_pointer == 10000

    def test_pointer_reference_count(self):
        code = (
            "int main() {\n"
            "    int x = 1;\n"
            "    {\n"
            "        int *p = &x;\n"
            "        x = x + 1;\n"
            "    }\n"
            "    return x;\n"
            "}\n"
        )
        interp = _run_until_line(code, 5)
        x = interp.snapshot().find("x")
        assert interp.memory.reference_count(x.address) == 1
        assert x.references == 1
        while interp.current_line != 7:
            assert interp.step() is None
        assert interp.memory.reference_count(x.address) == 0
        interp.run()
        assert interp.exit_code == 2


# ─── Arithmetic ─────────────────────────────

class TestArithmetic:
    def test_division_truncates_toward_zero(self):
        assert _exit("int main() { return (-7 / 2) == -3 && (-7 % 2) == -1; }") == 1

    def test_operator_precedence(self):
        assert _exit("int main() { return 2 + 3 * 4 - (10 >> 1); }") == 9

    def test_unsigned_wraps_silently(self):
        code = "int main() { unsigned int u = 0; u = u - 1; return u == 4294967295u; }"
        interp = _run(code)
        assert interp.exit_code == 1
        assert interp.diagnostics.warnings_of(WarningKind.OVERFLOW) == []

    def test_signed_overflow_warns_and_truncates(self):
        interp = _run("""
            int main() {
                int big = 2147483647;
                big = big + 1;
                return big < 0;
            }
        """)
        assert interp.exit_code == 1
        assert len(interp.diagnostics.warnings_of(WarningKind.OVERFLOW)) == 1

    def test_intermediate_overflow_warns_once(self):
        code = (
            "int main() {\n"
            "    int x = 2147483647;\n"
            "    int y = (x + 1) / 2;\n"
            "    return y < 0;\n"
            "}\n"
        )
        interp = _run(code)
        assert interp.exit_code == 1
        warnings = interp.diagnostics.warnings_of(WarningKind.OVERFLOW)
        assert len(warnings) == 1
        assert warnings[0].line == 3

    def test_overflowing_return_expression(self):
        interp = _run("""
            int f(void) { int x = 2147483647; return x + 1; }
            int main() { return f() < 0; }
        """)
        assert interp.exit_code == 1
        assert len(interp.diagnostics.warnings_of(WarningKind.OVERFLOW)) == 1

    def test_narrowing_return_value_is_checked(self):
        code = (
            "char f(void) {\n"
            "    return 300;\n"
            "}\n"
            "int main() { return f(); }\n"
        )
        interp = _run(code)
        assert interp.exit_code == 44
        warnings = interp.diagnostics.warnings_of(WarningKind.OVERFLOW)
        assert len(warnings) == 1
        assert warnings[0].line == 2

    def test_negating_int_min_overflows(self):
        code = "int main() { int m = -2147483647 - 1; int n = -m; return n == m; }"
        interp = _run(code)
        assert interp.exit_code == 1
        assert len(interp.diagnostics.warnings_of(WarningKind.OVERFLOW)) == 1

    def test_char_arithmetic_promotes(self):
        assert _exit("int main() { char c = 'A'; return c + 1; }") == 66

    def test_cast_truncates_without_warning(self):
        interp = _run("int main() { int x = 300; return (unsigned char) x; }")
        assert interp.exit_code == 44
        assert interp.diagnostics.warnings == []

    def test_floats(self):
        interp = _run("""
            int main() {
                double d = 7.0 / 2;
                float f = 0.5f;
                printf("%.2f %.1f\\n", d, f * 3);
                return (int) d;
            }
        """)
        assert interp.output == "3.50 1.5\n"
        assert interp.exit_code == 3

    def test_compound_assignment(self):
        code = """
            int main() {
                int x = 10;
                x += 5; x -= 3; x *= 2; x /= 4; x %= 4; x <<= 3; x |= 1; x ^= 3;
                return x;
            }
        """
        assert _exit(code) == 18

    def test_increments(self):
        code = "int main() { int i = 5; int a = i++; int b = ++i; return a * 10 + b; }"
        assert _exit(code) == 57

    def test_logical_short_circuit(self):
        code = """
            int hits = 0;
            int touch() { hits++; return 1; }
            int main() { int r = 0 && touch(); r = 1 || touch(); return hits; }
        """
        assert _exit(code) == 0

    def test_sizeof(self):
        code = "int main() { long long a[3]; return sizeof a + sizeof(short) + sizeof(int *); }"
        assert _exit(code) == 30


# ─── Control flow ───────────────────────────

class TestControlFlow:
    def test_while_with_break_and_continue(self):
        code = """
            int main() {
                int i = 0, total = 0;
                while (1) {
                    i++;
                    if (i % 2) continue;
                    if (i > 10) break;
                    total += i;
                }
                return total;
            }
        """
        assert _exit(code) == 30

    def test_do_while_runs_once(self):
        assert _exit("int main() { int n = 0; do { n++; } while (0); return n; }") == 1

    def test_for_loop_scope(self):
        code = """
            int main() {
                int total = 0;
                for (int i = 1; i <= 4; i++) total += i;
                for (int i = 0; i < 2; i++) { int sq = i * i; total += sq; }
                return total;
            }
        """
        assert _exit(code) == 11

    def test_switch_fall_through(self):
        code = """
            int pick(int x) {
                int total = 0;
                switch (x) {
                    case 1: total += 1;
                    case 2: total += 10;
                    case 3: total += 100; break;
                    default: total += 1000;
                }
                return total;
            }
            int main() { return pick(2) == 110 && pick(1) == 111 && pick(9) == 1000; }
        """
        assert _exit(code) == 1

    def test_switch_without_match_or_default(self):
        assert _exit("int main() { int r = 7; switch (3) { case 1: r = 0; } return r; }") == 7

    def test_return_from_nested_loops_pops_frames(self):
        interp = _run("""
            int find() {
                for (int i = 0; i < 5; i++) {
                    for (int j = 0; j < 5; j++) {
                        if (i * j == 6) return i * 10 + j;
                    }
                }
                return -1;
            }
            int main() { return find(); }
        """)
        assert interp.exit_code == 23
        assert len(interp.call_stack) == 1
        assert interp.memory.used(Region.STACK) == 0

    def test_ternary(self):
        assert _exit("int main() { int a = 4; return a > 3 ? a * 2 : -1; }") == 8

    def test_switch_skips_initializers_before_the_case(self):
        code = """
            int main() {
                int r = 5;
                switch (1) {
                    int skipped = 9;
                    case 1: r = skipped;
                }
                return r;
            }
        """
        assert _exit(code) == 0

    # ─── goto ───────────────────────────────

    def test_goto_backward_loop(self):
        code = "int main(void) { int i = 0; loop: i++; if (i < 3) goto loop; return i; }"
        assert _exit(code) == 3

    def test_goto_out_of_nested_blocks_pops_frames(self):
        interp = _run("""
            int find() {
                int hit = -1;
                for (int i = 0; i < 5; i++) {
                    for (int j = 0; j < 5; j++) {
                        int product = i * j;
                        if (product == 6) { hit = i * 10 + j; goto done; }
                    }
                }
            done:
                return hit;
            }
            int main() { return find(); }
        """)
        assert interp.exit_code == 23
        assert len(interp.call_stack) == 1
        assert interp.memory.used(Region.STACK) == 0

    def test_goto_forward_skips_statements(self):
        code = """
            int main() {
                int r = 1;
                goto skip;
                r = 100;
            skip:
                r = r + 1;
                return r;
            }
        """
        assert _exit(code) == 2

    def test_goto_backward_over_declaration_reuses_object(self):
        interp = _run("""
            int main() {
                int n = 0;
            again: ;
                int twice = n * 2;
                n++;
                if (n < 4) goto again;
                return twice;
            }
        """)
        assert interp.exit_code == 6
        assert interp.memory.used(Region.STACK) == 0


# ─── Pointers and arrays ────────────────────

class TestPointers:
    def test_swap_through_pointers(self):
        code = """
            void swap(int *a, int *b) { int t = *a; *a = *b; *b = t; }
            int main() { int x = 1, y = 2; swap(&x, &y); return x * 10 + y; }
        """
        assert _exit(code) == 21

    def test_pointer_arithmetic(self):
        code = """
            int main() {
                int arr[4] = {10, 20, 30, 40};
                int *p = arr;
                p = p + 2;
                int d = p - arr;
                return *p + d;
            }
        """
        assert _exit(code) == 32

    def test_array_initializer_zero_fills(self):
        code = "int main() { int a[5] = {1, 2}; return a[0] + a[1] + a[2] + a[4]; }"
        assert _exit(code) == 3

    def test_two_dimensional_array(self):
        code = """
            int main() {
                int m[2][3] = {{1, 2, 3}, {4, 5, 6}};
                return m[1][2] * 10 + m[0][1];
            }
        """
        assert _exit(code) == 62

    def test_index_commutes(self):
        assert _exit("int main() { int a[3] = {4, 5, 6}; return 2[a]; }") == 6

    def test_pointer_to_pointer(self):
        code = "int main() { int x = 3; int *p = &x; int **pp = &p; **pp = 9; return x; }"
        assert _exit(code) == 9

    def test_char_array_string(self):
        interp = _run("""
            int main() {
                char name[] = "abc";
                name[0] = 'x';
                printf("%s %d %d\\n", name, (int) strlen(name), (int) sizeof(name));
                return 0;
            }
        """)
        assert interp.output == "xbc 3 4\n"

    def test_string_literal_is_read_only(self):
        interp = _run("""
            int main() {
                char *s = "hi";
                s[0] = 'H';
                return 0;
            }
        """)
        assert interp.stop_reason is StopReason.ERROR
        assert interp.fatal.kind == "MEMORY_ACCESS"
        assert "read-only" in interp.fatal.message
        assert interp.fatal.line == 4

    def test_identical_literals_share_storage(self):
        code = 'int main() { char *a = "same"; char *b = "same"; return a == b; }'
        assert _exit(code) == 1

    def test_null_dereference(self):
        interp = _run("int main() { int *p = NULL; return *p; }")
        assert interp.stop_reason is StopReason.ERROR
        assert interp.fatal.kind == "INVALID_DEREFERENCE"
        assert "NULL" in interp.fatal.message

    def test_dangling_pointer_to_returned_local(self):
        interp = _run("""
            int *escape() { int local = 5; return &local; }
            int main() { int *p = escape(); return *p; }
        """)
        assert interp.stop_reason is StopReason.ERROR
        assert interp.fatal.kind == "INVALID_DEREFERENCE"
        assert "released" in interp.fatal.message


# ─── Globals and statics ────────────────────

class TestStorage:
    def test_globals_live_in_data_and_bss(self):
        interp = _run("""
            int g = 7;
            int zero;
            int main() { zero = g * 2; return zero; }
        """)
        assert interp.exit_code == 14
        snap = interp.snapshot()
        g, zero = snap.frames[0].records
        assert (g.name, g.region, g.value) == ("g", "DATA", 7)
        assert (zero.name, zero.region, zero.value) == ("zero", "BSS", 14)

    def test_static_local_keeps_value(self):
        code = """
            int counter() {
                static int n = 0;
                n++;
                return n;
            }
            int main() { counter(); counter(); return counter(); }
        """
        assert _exit(code) == 3

    def test_enum_and_typedef(self):
        code = """
            typedef unsigned char byte;
            enum level { LOW = 1, HIGH = 3 };
            int main() { byte b = HIGH; return b + LOW; }
        """
        assert _exit(code) == 4


# ─── Natives ────────────────────────────────

class TestNatives:
    def test_printf_formats(self):
        interp = _run("""
            int main() {
                printf("%d|%5d|%-3d|%u|%x|%c|%s|%%\\n", -4, 42, 7, -1, 255, 'z', "str");
                return 0;
            }
        """)
        assert interp.output == "-4|   42|7  |4294967295|ff|z|str|%\n"

    def test_printf_returns_length(self):
        assert _exit('int main() { return printf("hello"); }') == 5

    def test_puts_and_putchar(self):
        interp = _run('int main() { puts("line"); putchar(65); putchar(10); return 0; }')
        assert interp.output == "line\nA\n"

    def test_printf_too_few_arguments(self):
        interp = _run('int main() { printf("%d %d\\n", 1); return 0; }')
        assert interp.stop_reason is StopReason.ERROR
        assert "too few arguments" in interp.fatal.message

    def test_output_survives_error(self):
        interp = _run('int main() { int z = 0; printf("before\\n"); return 1 / z; }')
        assert interp.output == "before\n"
        assert interp.stop_reason is StopReason.ERROR


# ─── Heap ───────────────────────────────────

class TestHeap:
    def test_malloc_and_free(self):
        interp = _run("""
            int main() {
                int *a = malloc(3 * sizeof(int));
                int i;
                for (i = 0; i < 3; i++) a[i] = i * i;
                printf("%d %d %d\\n", a[0], a[1], a[2]);
                free(a);
                return 0;
            }
        """)
        assert interp.output == "0 1 4\n"
        assert interp.diagnostics.warnings == []
        assert interp.snapshot().heap == ()

    def test_calloc_zeroes(self):
        code = """
            int main() {
                int *a = calloc(4, sizeof(int));
                int s = a[0] + a[3];
                free(a);
                return s;
            }
        """
        assert _exit(code) == 0

    def test_heap_record_visible_while_live(self):
        code = (
            "int main() {\n"
            "    char *buf = malloc(16);\n"
            "    free(buf);\n"
            "    return 0;\n"
            "}\n"
        )
        interp = _run_until_line(code, 3)
        heap = interp.snapshot().heap
        assert len(heap) == 1
        assert heap[0].size == 16
        assert heap[0].region == "HEAP"
        assert heap[0].references == 1

    def test_leak_is_reported(self):
        code = (
            "int main() {\n"
            "    int *p = malloc(8);\n"
            "    return 0;\n"
            "}\n"
        )
        interp = _run(code)
        assert interp.stop_reason is StopReason.RETURNED
        leaks = interp.diagnostics.warnings_of(WarningKind.MEMORY_LEAK)
        assert len(leaks) == 1
        assert leaks[0].line == 2
        assert "8 bytes" in leaks[0].message

    def test_double_free(self):
        interp = _run("""
            int main() {
                char *p = malloc(4);
                free(p);
                free(p);
                return 0;
            }
        """)
        assert interp.stop_reason is StopReason.ERROR
        assert interp.fatal.kind == "INVALID_REFERENCE"
        assert "double free" in interp.fatal.message
        assert interp.fatal.line == 5

    def test_free_of_interior_pointer(self):
        interp = _run("int main() { char *p = malloc(4); free(p + 1); return 0; }")
        assert interp.fatal.kind == "INVALID_REFERENCE"

    def test_free_null_is_noop(self):
        assert _exit("int main() { free(NULL); return 0; }") == 0

    def test_use_after_free(self):
        interp = _run("""
            int main() {
                int *p = malloc(sizeof(int));
                *p = 5;
                free(p);
                return *p;
            }
        """)
        assert interp.fatal.kind == "INVALID_DEREFERENCE"
        assert "released" in interp.fatal.message

    def test_malloc_failure_returns_null(self):
        code = "int main() { char *p = malloc(100000); return p == NULL; }"
        assert _exit(code) == 1


# ─── Errors ─────────────────────────────────

class TestErrors:
    def test_division_by_zero_leaves_state_inspectable(self):
        code = (
            "int main() {\n"
            "    int a = 5;\n"
            "    int b = 0;\n"
            "    int c = a / b;\n"
            "    return c;\n"
            "}\n"
        )
        interp = _run(code)
        assert interp.stop_reason is StopReason.ERROR
        assert interp.state is ExecutionState.TERMINATED
        assert interp.fatal.kind == "DIVISION_BY_ZERO"
        assert interp.fatal.line == 4
        assert len(interp.call_stack.function_frames()) == 2
        assert interp.snapshot().find("a").value == 5

    def test_stack_overflow(self):
        interp = _run("int down(int n) { return down(n + 1); } int main() { return down(0); }",
                      profile="small")
        assert interp.stop_reason is StopReason.ERROR
        assert interp.fatal.kind == "STACK_OVERFLOW"

    def test_semantic_error_spares_other_functions(self):
        interp = _run("""
            int broken() { return missing; }
            int main() { puts("ok"); return 0; }
        """)
        assert interp.stop_reason is StopReason.RETURNED
        assert interp.output == "ok\n"
        assert [e.kind for e in interp.diagnostics.errors] == ["UNDECLARED"]

    def test_calling_a_failed_function(self):
        interp = _run("""
            int broken() { return missing; }
            int main() { return broken(); }
        """)
        assert interp.stop_reason is StopReason.ERROR
        assert "semantic errors" in interp.fatal.message

    def test_main_with_errors_does_not_run(self):
        interp = _run('int main() { puts("no"); int x; int x; return 0; }')
        assert interp.stop_reason is StopReason.ERROR
        assert interp.output == ""

    def test_missing_main(self):
        interp = _run("int helper() { return 1; }")
        assert interp.stop_reason is StopReason.ERROR
        assert "main" in interp.fatal.message

    def test_diagnostics_drain(self):
        interp = _run("int main() { unsigned char c = 300; int z = 0; return c / z; }")
        assert [w.kind for w in interp.diagnostics.drain_warnings()] == ["OVERFLOW"]
        assert [e.kind for e in interp.diagnostics.drain_errors()] == ["DIVISION_BY_ZERO"]
        assert len(interp.diagnostics) == 0
        assert interp.fatal.kind == "DIVISION_BY_ZERO"

    def test_parse_errors_propagate(self):
        with pytest.raises(ParseError):
            _run("int main() { return 0 }")
        with pytest.raises(LexerError):
            _run("int main() { return 0 @ 1; }")


# ─── Step protocol ──────────────────────────

class TestStepping:
    def test_states(self):
        interp = Interpreter()
        assert interp.state is ExecutionState.UNSTARTED
        interp.parse("int main() {\n int x = 1;\n return x;\n}\n")
        assert interp.step() is None
        assert interp.state is ExecutionState.PAUSED
        assert interp.current_line == 2
        assert interp.step() is None
        assert interp.current_line == 3
        assert interp.step() is StopReason.RETURNED
        assert interp.state is ExecutionState.TERMINATED
        assert interp.step() is StopReason.RETURNED

    def test_step_budget_halts_infinite_loop(self):
        interp = Interpreter()
        interp.parse("int main() { int n = 0; while (1) { n++; } return 0; }")
        interp.run(step_budget=100)
        assert interp.stop_reason is StopReason.STEP_LIMIT
        assert interp.state is ExecutionState.TERMINATED
        assert 0 < interp.snapshot().find("n").value < 100

    def test_empty_loop_body_still_steps(self):
        interp = Interpreter()
        interp.parse("int main() { for (;;) {} }")
        interp.run(step_budget=50)
        assert interp.stop_reason is StopReason.STEP_LIMIT

    def test_run_resumes_after_steps(self):
        interp = Interpreter()
        interp.parse('int main() { puts("a"); puts("b"); return 3; }')
        interp.step()
        interp.step()
        assert interp.output == "a\n"
        assert interp.run() == "a\nb\n"
        assert interp.exit_code == 3

    def test_instruction_ids_increase(self):
        interp = Interpreter()
        first = interp.next_instruction_id()
        assert interp.next_instruction_id() == first + 1

    def test_parse_after_start_is_rejected(self):
        interp = Interpreter()
        interp.parse("int main() { return 0; }")
        interp.step()
        with pytest.raises(InternalError):
            interp.parse("int main() { return 1; }")

    def test_independent_instances(self):
        a = _run('int g = 1; int main() { g = 5; return g; }')
        b = _run('int g = 1; int main() { return g; }')
        assert (a.exit_code, b.exit_code) == (5, 1)

    def test_snapshot_frames_bottom_to_top(self):
        code = (
            "int inner(int v) {\n"
            "    return v + 1;\n"
            "}\n"
            "int main() {\n"
            "    return inner(4);\n"
            "}\n"
        )
        interp = _run_until_line(code, 2)
        snap = interp.snapshot()
        assert [(f.kind, f.name) for f in snap.frames] == [
            ("global", "global"), ("params", "main"), ("function", "main"),
            ("params", "inner"), ("function", "inner"),
        ]
        assert snap.find("v").value == 4
        assert snap.current_line == 2

    def test_report_lists_warnings_with_source(self):
        interp = _run("int main() {\n  int x;\n  return x;\n}\n")
        report = interp.report()
        (diag, line), = report.warnings
        assert diag.kind == "UNINITIALIZED"
        assert line == "return x;"
        assert report.error is None
        assert "UNINITIALIZED" in str(report)
