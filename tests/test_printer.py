import io

from cfgtree.config import Config
from cfgtree.lexer import Lexer
from cfgtree.options import (
    Flag,
    bool_opt,
    float_opt,
    int_list,
    int_opt,
    sec_opt,
    str_opt,
)
from cfgtree.parser import parse_section
from cfgtree.printer import format_value, print_option, print_section


def render_option(opt, indent=0):
    out = io.StringIO()
    print_option(opt, out, indent, None)
    return out.getvalue()


def render_section(cfg, print_filter=None):
    out = io.StringIO()
    print_section(cfg, out, 0, print_filter)
    return out.getvalue()


def test_format_int():
    opt = int_opt("n")
    opt.set_int(-46)
    assert format_value(opt, 0) == "-46"


def test_format_float_uses_six_decimals():
    opt = float_opt("f")
    opt.set_float(3.14)
    assert format_value(opt, 0) == "3.140000"


def test_format_bool():
    opt = bool_opt("b")
    opt.set_bool(True)
    assert format_value(opt, 0) == "true"
    opt.set_bool(False)
    assert format_value(opt, 0) == "false"


def test_format_string_escapes_quotes_and_backslashes():
    opt = str_opt("s")
    opt.set_str('text " with quotes and \\')
    assert format_value(opt, 0) == '"text \\" with quotes and \\\\"'


def test_print_single_value_with_indent():
    opt = int_opt("n")
    opt.set_int(5)
    assert render_option(opt, 2) == "    n=5\n"


def test_unset_string_is_commented_out():
    assert render_option(str_opt("s")) == '# s=""\n'


def test_print_list():
    opt = int_list("nums")
    opt.set_int(1, 0)
    opt.set_int(2, 1)
    assert render_option(opt) == "nums = {1, 2}\n"


def test_print_comment_before_option():
    opt = int_opt("n")
    opt.set_int(5)
    opt.set_comment("hi")
    assert render_option(opt) == "/* hi */\nn=5\n"


def test_print_func_replaces_value():
    opt = int_opt("n")
    opt.set_int(5)
    opt.print_func = lambda o, index, out: out.write(f"<{o.get_int(index)}>")
    assert render_option(opt) == "n=<5>\n"


def test_quoted_string_survives_print_and_parse():
    value = 'text " with quotes and \\'
    cfg = Config([str_opt("parameter")], Flag.NONE)
    cfg.set_str("parameter", value, 0)
    text = render_section(cfg)

    again = Config([str_opt("parameter")], Flag.NONE)
    parse_section(again, Lexer(text))
    assert again.get_str("parameter", 0) == value


def test_print_default_section():
    cfg = Config([sec_opt("sub", [int_opt("a", 1)])], Flag.NONE)
    assert render_section(cfg) == "sub {\n  a=1\n}\n"


def test_print_titled_section():
    opts = [sec_opt("section", [str_opt("prop")], Flag.TITLE | Flag.MULTI)]
    cfg = Config(opts, Flag.NONE)
    parse_section(cfg, Lexer("section one { prop = 'v' }"))
    assert render_section(cfg) == 'section "one" {\n  prop="v"\n}\n'


def test_print_filter_applies_to_nested_sections():
    opts = [
        int_opt("foo-int", 1),
        int_opt("bar-int", 2),
        sec_opt("sub", [int_opt("foo-x", 3), int_opt("bar-y", 4)]),
    ]
    cfg = Config(opts, Flag.NONE)

    def no_foo(cfg, opt):
        return opt.name.startswith("foo-")

    text = render_section(cfg, no_foo)
    assert text == "bar-int=2\nsub {\n  bar-y=4\n}\n"
    assert "foo-" not in text


def test_print_filter_other_way_round():
    opts = [
        int_opt("foo-int", 1),
        int_opt("bar-int", 2),
        sec_opt("sub", [int_opt("foo-x", 3), int_opt("bar-y", 4)]),
    ]
    cfg = Config(opts, Flag.NONE)
    text = render_section(cfg, lambda cfg, opt: opt.name.startswith("bar-"))
    assert "bar-" not in text
    assert "foo-int=1" in text
    assert "  foo-x=3\n" in text