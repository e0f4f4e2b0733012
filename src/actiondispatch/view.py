"""
=============================================================================
FILE VIEWS
=============================================================================

Forwards that do not land on a handler binding end up here: the path is a
file under the view root.

    ForwardResolution("/account/view.html")
        │
        ▼
    FileViewRenderer.render(path, request, response)
        │
        ├── resolve under root ──── outside root ──► 403
        ├── not a file ───────────────────────────► 404
        ├── view extension ──► $placeholders filled from the handler,
        │                      request attributes and parameters
        └── anything else ──► raw bytes

Placeholders use string.Template syntax ("$name", "${user.name}" is not
supported, use "${user_name}" style names). Values are HTML-escaped.
Unknown placeholders are left as they are.

=============================================================================
"""

import logging
from pathlib import Path
from string import Template
from typing import Any, Dict

from .constants import REQ_ATTR_ACTION_BEAN
from .http.mime_types import get_content_type
from .http.status_codes import HTTPStatus
from .util.html import encode

logger = logging.getLogger(__name__)


class FileViewRenderer:
    """
    Renders views from a directory.

    Args:
        root_dir: Directory views are served from. Must exist.
        view_extension: Files with this extension get placeholder
            substitution.
    """

    def __init__(self, root_dir: str, view_extension: str = ".html"):
        self.root_dir = Path(root_dir).resolve()
        self.view_extension = view_extension
        if not self.root_dir.is_dir():
            raise ValueError(f"View root directory does not exist: {root_dir}")

    def _resolve(self, path: str) -> Path:
        """
        Filesystem path for a view path.

        Raises:
            PermissionError: The path escapes the view root.
        """
        view_path = path.split("?", 1)[0].lstrip("/")
        full_path = (self.root_dir / view_path).resolve()
        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            raise PermissionError(f"View path outside view root: {path}")
        return full_path

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except PermissionError:
            return False

    def render(self, path: str, request, response) -> None:
        try:
            full_path = self._resolve(path)
        except PermissionError:
            logger.warning(f"Path traversal attempt: {path}")
            response.send_error(HTTPStatus.FORBIDDEN, "Access denied")
            return

        if not full_path.is_file():
            response.send_error(HTTPStatus.NOT_FOUND, f"View not found: {path}")
            return

        content = full_path.read_bytes()
        if full_path.suffix == self.view_extension:
            template = Template(content.decode("utf-8"))
            content = template.safe_substitute(self.namespace(request)).encode("utf-8")

        if response.get_header("Content-Type") is None:
            response.set_content_type(get_content_type(full_path.name))
        response.write(content)
        logger.debug(f"Rendered view {path} ({len(content)} bytes)")

    @staticmethod
    def namespace(request) -> Dict[str, Any]:
        """
        Placeholder values: request parameters, overridden by request
        attributes, overridden by the public fields of the current handler.
        """
        values: Dict[str, Any] = {}
        for name, param_values in request.parameters.items():
            if param_values:
                values[name] = param_values[0]
        for name, value in request.attributes.items():
            if isinstance(value, (str, int, float)):
                values[name] = value

        handler = request.get_attribute(REQ_ATTR_ACTION_BEAN)
        if handler is not None:
            for name, value in vars(handler).items():
                if not name.startswith("_") and value is not None and name != "context":
                    values[name] = value

        return {name: encode(str(value)) for name, value in values.items()}
