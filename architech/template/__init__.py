"""Architech templates -- blueprint string DSL and Jinja2 file templates.

Key objects:
    render_template     - Render ``{{path}}`` / ``{{#if}}`` strings
    evaluate_condition  - Evaluate an action condition against a context
    TemplateRenderer    - Jinja2 renderer for file templates
"""

from .interpreter import (
    evaluate,
    evaluate_condition,
    extract_variables,
    is_truthy,
    parse_expression,
    parse_template,
    render_template,
    render_value,
    validate_template,
)
from .renderer import TemplateRenderer

__all__ = [
    # String DSL
    "render_template",
    "render_value",
    "parse_template",
    "extract_variables",
    "validate_template",
    # Expressions
    "evaluate",
    "evaluate_condition",
    "parse_expression",
    "is_truthy",
    # File templates
    "TemplateRenderer",
]
