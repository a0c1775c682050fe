"""Mount points for client plugins.

A ``MountPoint`` is the server-side stand-in for a DOM node: an id, an inner
HTML string and a dict of attributes. Client plugins write to it from
``render`` and must leave it empty after ``destroy``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from jinja2 import BaseLoader
from jinja2.sandbox import SandboxedEnvironment

# Shared sandbox for plugin markup; autoescape keeps config values from injecting HTML
_template_env = SandboxedEnvironment(loader=BaseLoader(), autoescape=True)


def render_markup(template: str, **context: Any) -> str:
    """Render ``template`` in the plugin sandbox."""
    return _template_env.from_string(template).render(**context)


@dataclass(frozen=True)
class MountSnapshot:
    inner_html: str
    attributes: Mapping[str, str]


@dataclass
class MountPoint:
    id: str
    inner_html: str = ""
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.inner_html == "" and not self.attributes

    def clear(self) -> None:
        self.inner_html = ""
        self.attributes = {}

    def snapshot(self) -> MountSnapshot:
        return MountSnapshot(self.inner_html, MappingProxyType(dict(self.attributes)))

    def restore(self, snapshot: MountSnapshot) -> None:
        self.inner_html = snapshot.inner_html
        self.attributes = dict(snapshot.attributes)
