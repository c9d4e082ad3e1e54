import pytest

from katlang.kat_interpreter import Binder
from katlang.kat_printer import to_string
from katlang.kat_runtime import parse


def run(source, **kwargs):
    result = parse(source, **kwargs)
    assert result.errors == [], result.format_errors(source)
    return result.text


# (id, source, expected canonical text)
ARITHMETIC_CASES = [
    ("constant", "6", "6"),
    ("negative_constant", "-5", "-5"),
    ("double_negation", "--5", "5"),
    ("binary_minus", "0-5", "-5"),
    ("minus_negative", "6--1", "7"),
    ("left_to_right", "6-2+3", "7"),
    ("divisions", "200 / 4 / 2", "25"),
    ("priority", "1+2*3", "7"),
    ("parentheses", "(2 + 3) * 4", "20"),
    ("power_priority", "2 + 3 ^ 2 * 3 + 4", "33"),
    ("power_right_assoc", "2^3^2", "512"),
    ("floor_division", "7 div 2", "3"),
    ("floor_division_negative", "-7 div 2", "-4"),
    ("div_call", "div(-7, 2)", "-4"),
    ("pow_call", "pow(2, 10)", "1024"),
    ("log_call", "log(8, 2)", "3"),
    ("remainder_keeps_dividend_sign", "-7 mod 3", "-1"),
    ("remainder_negative_divisor", "7 mod -3", "1"),
    ("comparison", "2 > 1", "1"),
    ("logic_and", "1 and 0", "0"),
    ("logic_or", "1 or 0", "1"),
    ("logic_xor", "1 xor 1", "0"),
    ("not_one", "not(1)", "0"),
    ("not_zero", "not(0)", "1"),
    ("not_not", "not(not(1))", "1"),
    ("inequality", "1 != 2", "1"),
    ("division_by_zero", "1/0", "Infinity"),
    ("negative_division_by_zero", "-1/0", "-Infinity"),
    ("zero_by_zero", "0/0", "NaN"),
    ("sqrt_domain", "sqrt(-1)", "NaN"),
    ("ln_zero", "ln(0)", "-Infinity"),
    ("sign", "sign(-5)", "-1"),
    ("abs", "abs(-2.5)", "2.5"),
    ("round_half_even", "round(2.5, 0)", "2"),
    ("pi", "pi", "3.141592653589793"),
    ("pi_call", "pi()", "3.141592653589793"),
    ("exp", "exp", "2.718281828459045"),
    ("exp_call", "exp()", "2.718281828459045"),
    ("lines", "1+2 3+4", "3\n7"),
    ("comma_tuple", "1+2, 3+4", "3\n7"),
    ("free_names", "a+b, 1, 2", "a+b,1,2"),
    ("empty_property", "x=", ""),
]

PROPERTY_CASES = [
    ("property", "Value = 1.234\nValue", "1.234"),
    ("property_with_input", "Value = 1.234\nValue(0)", "1.234"),
    ("property_expression", "Value = (2 + 3) * 4\nValue", "20"),
    ("parameter", "Func = (2 + 3) * x\nFunc(4)", "20"),
    ("two_parameters", "Sum = a+b\nSum(4,6)", "10"),
    ("nested_negation", "Func = sign(x)\nFunc(-(-2+3))", "-1"),
    ("negated_parameter", "Func = sign(-x)\nFunc (6)", "-1"),
    ("negative_argument", "Func = sign(x)\nFunc(-4)", "-1"),
    ("round", "Func = round(1.23456, 2)\nFunc", "1.23"),
    ("round_parameter", "Func = round(x, 2)\nFunc(1.23456)", "1.23"),
    ("scaled_round", "Func = x * round(1.23456, 2)\nFunc(2)", "2.46"),
    ("round_digits_parameter", "Func = round(1.23456, 2 * x)\nFunc(2)", "1.2346"),
    ("round_two_parameters", "Func = round(1 + x, 2)*y\nFunc (0.123456, 2)", "2.24"),
    ("call_before_operator", "f=a+1\n3+f(2)", "6"),
    ("bracket_starts_element", "Test=0<1\n(5)", "5"),
    ("double_execution", "f=a\nf(1), f(2)", "1,2"),
    ("grace_trailing", "f = a~ - b\nf(1, 5)", "4"),
    ("grace_leading", "f = a - ~b\nf(1, 5)", "4"),
    ("scope_parameters", "f = (a + b) + (b + c)\nf(2,3,4)", "12"),
    ("scope_ignored_prefix", "f = #a, #b, #c, (a + b) + (b + c)\nf(2, 3, 4, 5)", "12"),
    ("comments", "// Properties:\nf = x + 1 // increment\nf(1)", "2"),
]

IGNORE_CASES = [
    ("top_level", "#a, 6", "6"),
    ("only_ignored", "f = #a\nf(2)", ""),
    ("ignored_then_value", "f = #a, 3\nf(2)", "3"),
    ("twice_ignored", "f = #a, #a\nf(2)", ""),
    ("ignored_twice_then_used", "f = #a, #a, a\nf(2)", "2"),
    ("ignored_then_used_twice", "f = #a, a, a\nf(2)", "2,2"),
    ("ignored_then_constant", "f = #a, #a, 3\nf(2)", "3"),
    ("nested_all_ignored", "(#a, #a), 6", "6"),
    ("nested_partially_ignored", "(#a, a), 6", "a,6"),
    ("anonymous_slot", "f = 6, #\nf(0, 7, 6, 5, 4, 3, 2, 1)", "6"),
    ("unbound_ignored", "f = 6, #a\nf", "6"),
    ("unbound_slot", "f = 6, #\nf", "6"),
    ("nested_property", "g = 2, #\nf = g, 1\nf(0)", "2,1"),
    ("nested_property_tuple", "g = 2, #, 3\nf = g, 1\nf(0)", "2,3,1"),
    ("nested_property_call", "g = 2, #, 3\nf = g(5), 1\nf(0)", "2,3,1"),
]

CONDITIONAL_IF = "If = #1, a\nIf = #0, #a\n"
CONDITIONAL_ELSE = "else = #0, #a, b\nelse = #, a, #b\n"

CONDITIONAL_CASES = [
    ("true_branch", CONDITIONAL_IF + "If(1, 2)", "2"),
    ("false_branch", CONDITIONAL_IF + "If(0, 2)", ""),
    ("true_branch_extra", CONDITIONAL_IF + "If(1, 2, 3)", "2"),
    ("false_branch_extra", CONDITIONAL_IF + "If(0, 2, 3)", ""),
    ("else_zero", CONDITIONAL_ELSE + "else(0, 2, 3)", "3"),
    ("else_default", CONDITIONAL_ELSE + "else(1, 2, 3)", "2"),
    ("else_zero_extra", CONDITIONAL_ELSE + "else(0, 2, 3, 4)", "3"),
    ("else_default_extra", CONDITIONAL_ELSE + "else(1, 2, 3, 4)", "2"),
    ("else_default_short", CONDITIONAL_ELSE + "else(1, 2)", "2"),
    ("else_zero_short", CONDITIONAL_ELSE + "else(0, 2)", "b"),
    ("computed_true", CONDITIONAL_ELSE + "f = else(a>7, b, c)\nf(8, 3, 4)", "3"),
    ("computed_false", CONDITIONAL_ELSE + "f = else(a>7, b, c)\nf(6, 3, 4)", "4"),
    ("computed_missing_c", CONDITIONAL_ELSE + "f = else(a>7, b, c)\nf(8, 3)", "3"),
    ("computed_two_args", CONDITIONAL_ELSE + "f = else (a>7, b)\nf(8, 3)", "3"),
    ("computed_unbound_b", CONDITIONAL_ELSE + "f = else(a>7, b)\nf(8)", "b"),
    ("computed_condition_only", CONDITIONAL_ELSE + "f = else(a>7)\nf(8)", "a"),
    ("computed_unbound_c", CONDITIONAL_ELSE + "f = else(a>7, c, 6)\nf(8)", "c"),
    ("computed_unbound_c_d", CONDITIONAL_ELSE + "f = else(a>7, c, d)\nf(8)", "c"),
    ("builtin_if_true", "if(1, 2, 3)", "2"),
    ("builtin_if_false", "if(0, 2, 3)", "3"),
    ("builtin_if_without_else", "if(0, 2), 5", "5"),
]

HIGHER_ORDER_CASES = [
    ("anonymous_call", "a(3)", "a(3)"),
    ("unresolved_input", "f=k(6)\nf(a+1)", "f(a+1)"),
    ("closure_argument", "f=k(6)\nf{a+1}", "7"),
    ("unbound_callee", "f=k(6)\nf", "k(6)"),
    ("constant_callee", "f=k(6)\nf(1)", "1"),
    ("closure_used_twice", "f=k(6)+k(7)\nf{a+1}", "15"),
    ("tuple_result_as_input", "f=a+1,b+1,c+1\ng=x+y+z\ng(f(1,2,3))", "9"),
    ("partially_bound_input", "g = a(5)\nf = g((b+10) + c)\nf(3)", "g(13+c)"),
    ("partially_bound_result", "g = a(5)\nf = g(b+10) + c\nf(3)", "13+c"),
    ("closure_in_body", "g = a(5)\nf = g{b+10} + c\nf(3)", "18"),
    ("self_application", "f=x+1\nf(f)", "f(x+1)"),
]

SELECTION_CASES = [
    ("literal_tuple", "(1,2,3,4):1", "2"),
    ("property_tuple", "f=(1,2,3,4)\nf:1", "2"),
    ("parameters", "f=a:b\nf((1,2,3,4),1)", "2"),
    ("scalar_zero", "A=3\nA:0", "3"),
    ("unbound_selector", "A=3\nA:x", "3:x"),
    ("length", "Data=5,4,3,2,1\nData.length", "5"),
    ("repeated_selection", "Data=5,4,3,2,1\nZ=a+1, Data:a\nrepeat(Z, 2, 0)", "2,4"),
    ("repeated_sum", "Data=5,4,3,2,1\nSumData=a+1, sum+Data:a\nrepeat(SumData, Data.length, 0, 0):1", "15"),
]

LOOP_CASES = [
    ("factorial", "f=n-1, n*result, n>1\nloop(f, 6, 1):1", "720"),
    ("repeat_zero_times", "f=n+1\nrepeat(f, 0, 10)", "10"),
    ("repeat_three_times", "f=n+1\nrepeat(f, 3, 10)", "13"),
    (
        "euler_1",
        "Algo = n - 1, result + if(n mod 3==0 or n mod 5==0, n), n > 2\n"
        "Sum = loop(Algo, x, 0) : 1\n"
        "Sum(999)",
        "233168",
    ),
    (
        "euler_2",
        "Algo = b, ~a + b, sum + if(b mod 2 == 0, b), b <= 4000000\n"
        "Sum = loop(Algo, 1, 2, 0) : 2\n"
        "Sum",
        "4613732",
    ),
]

EXTENSION_CASES = [
    ("closure_property", "Numbers={A=x B=3}\nNumbers.A(6)", "6"),
    ("constant_owner", "Add1=x+1 6.Add1", "7"),
    ("property_owner", "Add1=x+1 Number=6 Number.Add1", "7"),
    ("fraction_owner", "Add1=x+1 6.5.Add1", "7.5"),
    ("chained", "Numbers=(First=1 Second=2) Add=a+1 Numbers.First.Add", "2"),
    ("chained_call", "Numbers=(First=1 Second=2)\nAdd=a+b\nNumbers.First.Add(3)", "4"),
    (
        "repeat",
        "Numbers = 3, 5, 9, 1, 0, 6\nAdd = a + 1, sum + Numbers:a\n"
        "Sum = Add.repeat(Numbers.length, 0, 0):1\nSum",
        "24",
    ),
    (
        "loop_with_comments",
        "//Properties:\nAlgo = b, ~a + b, sum + if(b mod 2 == 0, b), b<10\n"
        "Sum = Algo.loop(1, 2, 0) : 2\n//Output:\nSum",
        "10",
    ),
    (
        "chained_repeat",
        "Add1 = a + 1, b\nCheck = if(a < b, a, 0), b\nAdd1.Add1.Check.repeat(6, 0, 30)",
        "12,30",
    ),
    (
        "chained_calls_in_property",
        "Add = a+1, b, c\nCheck1 = if(a<b, (a, b), (b, a)); c\nCheck2 = a; if(b<c, (b, c), (c, b))\n"
        "Algo = Add(a,b,c).Check1.Check2\nAlgo(1,2,3)",
        "2,2,3",
    ),
    (
        "chained_calls",
        "Add = a+1, b, c\nCheck1 = if(a<b, (a, b), (b, a)); c\nCheck2 = a; if(b<c, (b, c), (c, b))\n"
        "Add(3,2,3).Check1.Check2",
        "2,3,4",
    ),
    ("parameter_owner", "K=a.t\nK(2, {x+1})", "3"),
    ("graced_parameter_owner", "K=a.~t\nK({x+1}, 2)", "3"),
]

COMBINE_CASES = [
    (
        "semicolon",
        "Check = if(x > 0, (x-1 y), (y-1 y-1))\nAlgo = Check(x, y); y > 0\nAlgo.loop(6, 6)",
        "0,0,1",
    ),
    (
        "combine_call",
        "Check = if(x > 0, (x-1 y), (y-1 y-1))\nAlgo = combine(Check(x, y), y > 0)\nAlgo.loop(6, 6)",
        "0,0,1",
    ),
    ("tuples", "combine((1, 2), 3)", "1\n2\n3"),
]

TEXT_CASES = [
    ("literal", "'abc'", "'abc'"),
    ("reverse", "'abc'.Reverse", "'cba'"),
    ("reverse_call", "Reverse('abc')", "'cba'"),
    ("string_of_number", "5.String", "'5'"),
    ("string_call", "String(2.5)", "'2.5'"),
    ("equal", "'a' == 'a'", "1"),
    ("not_equal", "'a' != 'a'", "0"),
]


def _cases(*tables):
    rows = [row for table in tables for row in table]
    return pytest.mark.parametrize("source, expected", [r[1:] for r in rows], ids=[r[0] for r in rows])


@_cases(ARITHMETIC_CASES)
def test_arithmetic(source, expected):
    assert run(source) == expected


@_cases(PROPERTY_CASES)
def test_properties(source, expected):
    assert run(source) == expected


@_cases(IGNORE_CASES)
def test_ignore_markers(source, expected):
    assert run(source) == expected


@_cases(CONDITIONAL_CASES)
def test_conditionals(source, expected):
    assert run(source) == expected


@_cases(HIGHER_ORDER_CASES)
def test_higher_order(source, expected):
    assert run(source) == expected


@_cases(SELECTION_CASES)
def test_content_selection(source, expected):
    assert run(source) == expected


@_cases(LOOP_CASES)
def test_loops(source, expected):
    assert run(source) == expected


@_cases(EXTENSION_CASES)
def test_extensions(source, expected):
    assert run(source) == expected


@_cases(COMBINE_CASES)
def test_combine(source, expected):
    assert run(source) == expected


@_cases(TEXT_CASES)
def test_text(source, expected):
    assert run(source) == expected


# --- Secondary programs ----------------------------------------------------

@pytest.fixture
def program_dir(tmp_path):
    (tmp_path / "algorithm.kat").write_text("X=5 9+11 10 12", encoding="utf-8")
    (tmp_path / "sum.kat").write_text("9+11", encoding="utf-8")
    sub = tmp_path / "lib"
    sub.mkdir()
    (sub / "outer.kat").write_text("open('inner.kat') + 1", encoding="utf-8")
    (sub / "inner.kat").write_text("41", encoding="utf-8")
    return tmp_path


OPEN_CASES = [
    ("value", "A=open('sum.kat')\nB=10\nA+B", "30"),
    ("with_properties", "A=open('algorithm.kat')\nB=10\nA+B", "30"),
    ("property_access", "A=open('algorithm.kat')\nA.X+10", "15"),
    ("selection", "A=open('algorithm.kat')\nA:1", "10"),
    ("nested_relative", "open('lib/outer.kat')", "42"),
]


@pytest.mark.parametrize("source, expected", [c[1:] for c in OPEN_CASES], ids=[c[0] for c in OPEN_CASES])
def test_open(program_dir, source, expected):
    assert run(source, source_dir=str(program_dir)) == expected


@pytest.fixture
def loader():
    programs = {"https://example.test/algorithm.kat": "X=20"}

    def load(address):
        if address not in programs:
            raise RuntimeError(f"HTTP 404 for {address}: not found")
        return programs[address]
    return load


def test_load(loader):
    source = "A=load('https://example.test/algorithm.kat')\nA.X+5"
    assert run(source, loader=loader) == "25"


def test_join_address(loader):
    source = "join('https://example.test/algorithm.kat')\nX+5"
    assert run(source, loader=loader) == "25"


def test_join_loaded_algorithm(loader):
    source = "A=load('https://example.test/algorithm.kat')\njoin(A)\nX+5"
    assert run(source, loader=loader) == "25"


def test_nested_program_sees_the_same_loader(loader):
    programs = {
        "outer": "load('inner') + 1",
        "inner": "41",
    }
    assert run("load('outer')", loader=programs.__getitem__) == "42"


def test_clones_isolate_repeated_invocations():
    # The body of Z is rewritten on every call; each call must start from the declaration.
    source = "Z=a+1, a*2\nrepeat(Z, 3, 1)"
    assert run(source) == "4,6"


@pytest.mark.parametrize("source", [
    "1, (2, (3, 4)), ()",
    "(#a, #a), 6",
    "f = a + 1\nf",
    "{x+1}",
], ids=["nested_tuples", "ignored_pair", "free_property", "closure"])
def test_unwrapping_a_normalized_result_changes_nothing(source):
    result = parse(source)
    assert result.errors == []
    expected = result.text
    binder = Binder()
    once = binder._unwrap_algorithm(result.expression)
    assert to_string(once) == expected
    twice = binder._unwrap_algorithm(once)
    assert to_string(twice) == expected
