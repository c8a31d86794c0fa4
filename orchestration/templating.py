"""
Template Resolver
Fills ${TOKEN} placeholders in pipeline documents from published exports
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Union

from .errors import RegistryError, UnresolvedPlaceholderError

PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class Placeholder:
    """
    Maps a template token to a registry export

    Args:
        key: Export key to resolve
        transform: Optional function deriving the substituted text from the export value
        separator: Resolve a list export and join it with this separator
    """
    key: str
    transform: Optional[Callable[[str], str]] = None
    separator: Optional[str] = None

    def resolve(self, registry) -> str:
        if self.separator is not None:
            value = self.separator.join(registry.resolve_list(self.key))
        else:
            value = registry.resolve(self.key)
        if self.transform is not None:
            value = self.transform(value)
        return value


def tokens(document: str) -> List[str]:
    """Distinct placeholder names in order of first appearance"""
    seen: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(document):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def load_template(path: Union[str, Path]) -> str:
    return Path(path).read_text(encoding="utf-8")


class TemplateResolver:
    """
    One-pass placeholder substitution

    Every token in a document must map either to a registry export or to a
    caller supplied literal. Rendering substitutes all of them or raises
    UnresolvedPlaceholderError; substituted text is never scanned again.
    """

    def __init__(self, placeholders: Mapping[str, Union[str, Placeholder]],
                 literals: Optional[Mapping[str, str]] = None):
        self.placeholders: Dict[str, Placeholder] = {
            token: spec if isinstance(spec, Placeholder) else Placeholder(spec)
            for token, spec in placeholders.items()
        }
        self.literals: Dict[str, str] = dict(literals or {})

    def _value(self, token: str, registry) -> str:
        placeholder = self.placeholders.get(token)
        if placeholder is None:
            if token in self.literals:
                return self.literals[token]
            raise UnresolvedPlaceholderError(token)
        try:
            return placeholder.resolve(registry)
        except RegistryError as e:
            raise UnresolvedPlaceholderError(token, placeholder.key) from e

    def render(self, document: str, registry) -> str:
        """
        Render a template document against the registry

        Args:
            document: Text containing ${NAME} placeholders
            registry: ExportRegistry or RegistryView to resolve exports from

        Returns:
            The document with every placeholder substituted

        Raises:
            UnresolvedPlaceholderError: If any token cannot be resolved
        """
        values = {token: self._value(token, registry) for token in tokens(document)}
        return PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], document)
