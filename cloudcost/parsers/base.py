"""
Parser interface for infrastructure-as-code sources.

A parser turns files on disk into Declarations: a resource type, a name
and a free-form attribute mapping. It knows nothing about pricing.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging


logger = logging.getLogger(__name__)


PathLike = Union[str, Path]


class ParserError(Exception):
    """Raised when an IaC source cannot be read or decoded."""
    pass


@dataclass
class Declaration:
    """One resource declaration as written in the IaC source."""
    resource_type: str  # e.g., "aws_instance"
    name: str  # e.g., "web"
    attributes: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None  # file the declaration came from

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"


class Parser(ABC):
    """Capability interface implemented by every IaC parser."""

    @abstractmethod
    def parse(self, path: PathLike) -> List[Declaration]:
        """
        Parse IaC files and return the declarations found.

        Raises:
            ParserError: If the source cannot be read or decoded
        """

    @abstractmethod
    def can_handle(self, path: PathLike) -> bool:
        """Check whether this parser understands the given file or directory."""

    @abstractmethod
    def get_name(self) -> str:
        """Human-readable parser name, e.g. "Terraform plan"."""


class ParserRegistry:
    """Ordered parser list; the first parser that can handle a path wins."""

    def __init__(self):
        self._parsers: List[Parser] = []

    def register(self, parser: Parser) -> None:
        self._parsers.append(parser)

    def find(self, path: PathLike) -> Optional[Parser]:
        for parser in self._parsers:
            if parser.can_handle(path):
                logger.debug("Using parser %s for %s", parser.get_name(), path)
                return parser
        return None

    def names(self) -> List[str]:
        return [parser.get_name() for parser in self._parsers]

    def __len__(self) -> int:
        return len(self._parsers)
