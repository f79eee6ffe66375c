"""Jinja2 rendering for rich (HTML) notification bodies."""

from typing import Any

from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

_env = SandboxedEnvironment(
    autoescape=True,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)

EMAIL_HTML_TEMPLATE = """\
<html>
  <body>
    <h2>{{ title }}</h2>
    <p>{{ body }}</p>
    {% if context %}<ul>
    {% for key, value in context|dictsort %}<li><strong>{{ key }}</strong>: {{ value }}</li>
    {% endfor %}</ul>{% endif %}
    <p><small>Category: {{ category }}</small></p>
  </body>
</html>"""


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Render a template string in the sandbox.

    Missing variables raise (StrictUndefined) and every value is escaped.
    """
    template = _env.from_string(template_str)
    return template.render(context)


def render_email_html(
    title: str, body: str, category: str, context: dict[str, Any]
) -> str:
    str_context = {str(k): str(v) for k, v in context.items()}
    return render_template(
        EMAIL_HTML_TEMPLATE,
        {"title": title, "body": body, "category": category, "context": str_context},
    )
