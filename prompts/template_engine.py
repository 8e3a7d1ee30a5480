"""Prompt templates: {{variable}} substitution and {{include:file}} directives."""

import logging
import os
import re
from agent.exceptions import PromptTemplateError


PROMPTS_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_PROFILE = "default"

_INCLUDE_RE = re.compile(r"\{\{include:([^}]+)\}\}")
_VARIABLE_RE = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")

logger = logging.getLogger(__name__)


class PromptTemplateEngine:
    """
    Renders markdown prompt templates for one profile.

    A profile directory only needs the templates it changes; anything it
    lacks is read from the default profile. Placeholders with no matching
    variable render as empty text.
    """

    def __init__(self, prompts_dir: str = PROMPTS_DIR, profile: str = DEFAULT_PROFILE):
        self.profile = profile
        self.search_dirs = [os.path.join(prompts_dir, profile)]
        if profile != DEFAULT_PROFILE:
            self.search_dirs.append(os.path.join(prompts_dir, DEFAULT_PROFILE))
        if not os.path.isdir(self.search_dirs[0]):
            raise PromptTemplateError(f"Prompts directory not found: {self.search_dirs[0]}")

    def render(self, template_name: str, variables: dict) -> str:
        """Load a template, expand its includes, then substitute variables."""
        template = self._expand(template_name, stack=())
        return self.render_string(template, variables)

    def render_string(self, template_str: str, variables: dict) -> str:
        def substitute(match):
            name = match.group(1)
            if name not in variables:
                logger.debug("Template variable %s has no value", name)
                return ""
            return str(variables[name])

        return _VARIABLE_RE.sub(substitute, template_str)

    def list_templates(self) -> list[str]:
        """Template names visible to this profile."""
        names = set()
        for directory in self.search_dirs:
            if os.path.isdir(directory):
                names.update(n for n in os.listdir(directory) if n.endswith(".md"))
        return sorted(names)

    def _expand(self, template_name: str, stack: tuple) -> str:
        if template_name in stack:
            chain = " -> ".join(stack + (template_name,))
            raise PromptTemplateError(f"Circular template include: {chain}")

        with open(self._find(template_name), "r", encoding="utf-8") as f:
            template = f.read()

        def include(match):
            return self._expand(match.group(1).strip(), stack + (template_name,))

        return _INCLUDE_RE.sub(include, template)

    def _find(self, template_name: str) -> str:
        for directory in self.search_dirs:
            path = os.path.join(directory, template_name)
            if os.path.isfile(path):
                return path
        raise PromptTemplateError(f"Template not found: {template_name} (profile {self.profile})")
