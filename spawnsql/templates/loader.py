"""
Template Loader - resolves includes and imports through a ComponentSource.
"""

from typing import Any, Callable, Optional, Tuple

from jinja2 import BaseLoader, TemplateNotFound

from .sources import ComponentSource


class ComponentLoader(BaseLoader):
    """
    Jinja2 loader backed by a :class:`ComponentSource`.

    Fragments are fetched lazily, only when a template includes, imports or
    extends them.

    Args:
        source: Live or pinned component source
        encoding: Encoding of component files
    """

    def __init__(self, source: ComponentSource, encoding: str = "utf-8"):
        self.source = source
        self.encoding = encoding

    def get_source(
        self,
        environment: Any,
        template: str
    ) -> Tuple[str, Optional[str], Optional[Callable[[], bool]]]:
        """
        Load component source.

        Returns:
            Tuple of (source, filename, uptodate_func)

        Raises:
            TemplateNotFound: If the source has no component named *template*
        """
        data = self.source.load(template)
        if data is None:
            raise TemplateNotFound(template)

        # Components never change during a render
        return data.decode(self.encoding), self.source.describe(template), lambda: True
