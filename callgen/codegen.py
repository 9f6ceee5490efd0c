"""Render templates and write generated output.

Takes the context from context_builder and produces one client package:
`__init__.py`, `models.py` and one module per operation group.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import jinja2

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


def make_environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
    )


def render(context: dict[str, Any]) -> dict[str, str]:
    """Render every file of the package, keyed by file name in sorted order."""
    env = make_environment()
    files = {
        "__init__.py": env.get_template("__init__.py.j2").render(**context),
        "models.py": env.get_template("models.py.j2").render(**context),
    }
    module_template = env.get_template("module.py.j2")
    for module in context["modules"]:
        files[module["module_name"] + ".py"] = module_template.render(module=module, **context)
    return {name: files[name] for name in sorted(files)}


def write_files(files: dict[str, str], output_dir: Path) -> list[Path]:
    """Write rendered files into output_dir, creating it if needed."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for name, text in files.items():
        path = output_dir / name
        path.write_text(text)
        written.append(path)
    logger.info("Wrote %d files to %s", len(written), output_dir)
    return written
