"""Writing a configuration tree back out in configuration syntax."""

from __future__ import annotations

from typing import Any, Callable, Optional, TextIO

from .options import Flag, Option, OptType

PrintFilter = Callable[[Any, Option], bool]


def _indent(out: TextIO, indent: int) -> None:
    out.write("  " * indent)


def _has(flags: int, flag: Flag) -> bool:
    return int(flags) & int(flag) == int(flag)


def format_value(opt: Option, index: int = 0) -> str:
    """The value at index as configuration text; empty for non-scalar types."""
    if opt.type is OptType.INT:
        return str(opt.get_int(index))
    if opt.type is OptType.FLOAT:
        return f"{opt.get_float(index):f}"
    if opt.type is OptType.STR:
        text = opt.get_str(index) or ""
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if opt.type is OptType.BOOL:
        return "true" if opt.get_bool(index) else "false"
    return ""


def _write_value(opt: Option, index: int, out: TextIO) -> None:
    if opt.print_func is not None:
        opt.print_func(opt, index, out)
    else:
        out.write(format_value(opt, index))


def print_option(opt: Option, out: TextIO, indent: int = 0,
                 print_filter: Optional[PrintFilter] = None) -> None:
    """Write one option, with its comment, at the given indent level."""
    if _has(opt.flags, Flag.COMMENTS) and opt.comment:
        _indent(out, indent)
        out.write(f"/* {opt.comment} */\n")

    if opt.type is OptType.SEC:
        titled = _has(opt.flags, Flag.TITLE)
        for section in list(opt.values):
            _indent(out, indent)
            if titled:
                out.write(f'{opt.name} "{section.title}" {{\n')
            else:
                out.write(f"{opt.name} {{\n")
            print_section(section, out, indent + 1, print_filter)
            _indent(out, indent)
            out.write("}\n")
    elif opt.type not in (OptType.FUNC, OptType.NONE):
        _indent(out, indent)
        if _has(opt.flags, Flag.LIST):
            out.write(f"{opt.name} = {{")
            for index in range(opt.size()):
                if index:
                    out.write(", ")
                _write_value(opt, index, out)
            out.write("}")
        else:
            unset = opt.size() == 0 or (opt.type is OptType.STR and opt.get_str(0) is None)
            if unset:
                out.write("# ")
            out.write(f"{opt.name}=")
            _write_value(opt, 0, out)
        out.write("\n")
    elif opt.print_func is not None:
        _indent(out, indent)
        opt.print_func(opt, 0, out)
        out.write("\n")


def print_section(cfg: Any, out: TextIO, indent: int = 0,
                  print_filter: Optional[PrintFilter] = None) -> None:
    """Write every option of cfg; options the filter accepts are left out.

    The configuration's own print filter, when set, takes precedence over the
    one passed in, and is handed down to nested sections.
    """
    for opt in list(cfg.opts):
        active = cfg.print_filter or print_filter
        if active is not None and active(cfg, opt):
            continue
        print_option(opt, out, indent, active)