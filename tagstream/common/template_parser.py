from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from tagstream.common.utils import remove_continuous_break_lines


class TemplateParser:
    def __init__(self, base_dir: str | Path):
        self.env = Environment(
            loader=FileSystemLoader(str(base_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def get_template(self, template_name: str) -> Template:
        return self.env.get_template(template_name)

    def render_template(self, template: str | Template, **kwargs) -> str:
        if isinstance(template, str):
            template = self.get_template(template)
        return remove_continuous_break_lines(template.render(**kwargs))
