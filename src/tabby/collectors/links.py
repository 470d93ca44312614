"""Editor links — turn an origin file/line into a clickable URL.

Templates use ``%f`` for the (URL-encoded) file path and ``%l`` for the
line number.  Path replacements map a server-side prefix onto a local one,
for code running in a container or on a remote host.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

if TYPE_CHECKING:
    from collections.abc import Mapping

EDITOR_LINK_TEMPLATES: dict[str, str] = {
    "sublime": "subl://open?url=file://%f&line=%l",
    "textmate": "txmt://open?url=file://%f&line=%l",
    "emacs": "emacs://open?url=file://%f&line=%l",
    "macvim": "mvim://open/?url=file://%f&line=%l",
    "pycharm": "pycharm://open?file=%f&line=%l",
    "idea": "idea://open?file=%f&line=%l",
    "idea-remote": "javascript:(()=>{let r=new XMLHttpRequest;"
    "r.open('get','http://localhost:63342/api/file/?file=%f&line=%l');r.send();})()",
    "vscode": "vscode://file/%f:%l",
    "vscode-insiders": "vscode-insiders://file/%f:%l",
    "vscode-remote": "vscode://vscode-remote/%f:%l",
    "vscode-insiders-remote": "vscode-insiders://vscode-remote/%f:%l",
    "vscodium": "vscodium://file/%f:%l",
    "nova": "nova://open?path=%f&line=%l",
    "atom": "atom://core/open/file?filename=%f&line=%l",
    "espresso": "x-espresso://open?filepath=%f&lines=%l",
    "netbeans": "netbeans://open/?f=%f:%l",
    "cursor": "cursor://file/%f:%l",
}

# JetBrains IDEs expose a local REST endpoint that must be hit via XHR.
_IDEA_AJAX_TEMPLATE = "http://localhost:63342/api/file/?file=%f&line=%l"


class EditorLinks:
    """Builds editor URLs for origin frames.

    Args:
        template: Link template, or None to disable links.
        replacements: Server path prefix -> local path prefix.

    """

    __slots__ = ("ajax", "replacements", "template")

    def __init__(
        self,
        template: str | None = None,
        replacements: Mapping[str, str] | None = None,
    ) -> None:
        self.template = ""
        self.ajax = False
        self.replacements: dict[str, str] = dict(replacements or {})
        if template:
            self.set_template(template)

    def set_editor(self, editor: str) -> bool:
        """Use the built-in template for ``editor``; returns False if unknown."""
        template = EDITOR_LINK_TEMPLATES.get(editor)
        if template is None:
            return False
        self.set_template(template)
        return True

    def set_template(self, template: str, *, ajax: bool = False) -> None:
        """Set a raw link template (``idea`` selects the XHR endpoint)."""
        if template == "idea":
            self.template = _IDEA_AJAX_TEMPLATE
            self.ajax = True
        else:
            self.template = template
            self.ajax = ajax

    def add_replacements(self, replacements: Mapping[str, str]) -> None:
        self.replacements.update(replacements)

    def normalize_file_path(self, file: str | None) -> str:
        """Shorten a path by stripping the first matching server prefix."""
        if not file:
            return ""
        file = _resolve(file)
        for prefix in self.replacements:
            if file.startswith(prefix):
                file = file[len(prefix):]
                break
        return file.replace("\\", "/").lstrip("/")

    def link(self, file: str | None, line: int | None = None) -> dict[str, Any] | None:
        """Editor link for ``file:line``, or None without a template or file."""
        if not file or not self.template:
            return None
        file = _resolve(file)
        for prefix, replacement in self.replacements.items():
            if file.startswith(prefix):
                file = replacement + file[len(prefix):]
                break
        url = self.template.replace(
            "%f", quote(file.replace("\\", "/"), safe="")
        ).replace("%l", quote(str(line or 1), safe=""))
        return {
            "url": url,
            "ajax": self.ajax,
            "filename": os.path.basename(file),
            "line": str(line) if line else "?",
        }


def _resolve(file: str) -> str:
    if os.path.exists(file):
        return os.path.realpath(file)
    return file
