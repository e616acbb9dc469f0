"""
Argument templating for job commands.

Arguments may reference job parameters as ``{{ .name }}``. Anything else
between double braces, or an unclosed ``{{``, is a template error.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Mapping

from cronlink.errors import TemplateError

ACTION_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
FIELD_RE = re.compile(r"^\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*$")


def render(template: str, params: Mapping[str, str]) -> str:
    if "{{" in ACTION_RE.sub("", template):
        raise TemplateError(f'unclosed template action in "{template}"')

    def repl(match: re.Match[str]) -> str:
        field = FIELD_RE.match(match.group(1))
        if not field:
            raise TemplateError(f'invalid template action "{match.group(0)}"')
        name = field.group(1)
        if name not in params:
            raise TemplateError(f'no value for "{name}"')
        return str(params[name])

    return ACTION_RE.sub(repl, template)


def render_args(args: Iterable[str], params: Mapping[str, str]) -> List[str]:
    # A failed argument is passed through as written; the others still render.
    rendered: List[str] = []
    for arg in args:
        try:
            rendered.append(render(arg, params))
        except TemplateError:
            rendered.append(arg)
    return rendered
