"""
Jinja2 loader for prompt and message templates.

Templates live next to this module in templates/<name>.jinja2 and are
addressed through the Template constants.
"""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .templates import Template

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _missing_templates() -> list[Path]:
    names = [getattr(Template, attr) for attr in vars(Template) if not attr.startswith("_")]
    return [
        TEMPLATES_DIR / f"{name}.jinja2"
        for name in names
        if not (TEMPLATES_DIR / f"{name}.jinja2").exists()
    ]


# Fail at import rather than mid-conversation
_missing = _missing_templates()
if _missing:
    raise FileNotFoundError(f"Template(s) missing: {', '.join(str(p) for p in _missing)}")


@lru_cache(maxsize=1)
def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )


def render(template_name: str, **context) -> str:
    """
    Render a template by name (without the .jinja2 extension).

    Raises jinja2.UndefinedError if the template references a variable
    missing from context.
    """
    template = _get_environment().get_template(f"{template_name}.jinja2")
    return template.render(**context).strip()
