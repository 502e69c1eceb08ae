"""Side declaration file for top-level `var` bindings.

When enabled, every `var` statement executed directly in the entry `main`
frame records one C declaration. The rendered file is only an artifact:
compiling or running it is left to whatever toolchain the caller uses.
"""

from typing import List

from .scope import Value

HEADER = "#include <stdio.h>\n#include <string.h>\n#include <ctype.h>\n#include <string.h>\n"
MIN_STRING_WIDTH = 128


def _c_string(text: str) -> str:
    # backslash-n pairs are already C escapes; only quotes need care
    return text.replace('"', '\\"')


class DeclarationWriter:
    def __init__(self, number_format: str = "fraction"):
        self.number_format = number_format
        self.lines: List[str] = []

    def declare(self, name: str, value: Value) -> str:
        if value.is_string:
            text = value.as_string(name)
            width = max(MIN_STRING_WIDTH, len(text.encode("utf-8")) + 1)
            line = f'char {name}[{width}] = "{_c_string(text)}";'
        elif self.number_format == "integer":
            line = f"long long {name} = {int(value.as_number(name))};"
        else:
            line = "double %s = %f;" % (name, value.as_number(name))
        self.lines.append(line)
        return line

    def render(self) -> str:
        body = "".join(f"{line}\n" for line in self.lines)
        return f"{HEADER}int main(void) {{\n{body}}}\n"
