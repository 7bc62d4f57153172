"""Black-box discovery of CLI command hierarchies from their help output."""

__version__ = "0.1.0"

from .crawl import Crawler
from .errors import (
    BinaryNotFoundError,
    DiscoveryError,
    HelptreeError,
    ProbeError,
    ProbeTimeoutError,
)
from .fetch import HelpFetcher
from .merge import merge, run
from .models import Flag, FlagSection, Node, NodeKind, ParsedHelp, Positional
from .parse import SectionParser, parse_help

__all__ = [
    "BinaryNotFoundError",
    "Crawler",
    "DiscoveryError",
    "Flag",
    "FlagSection",
    "HelpFetcher",
    "HelptreeError",
    "Node",
    "NodeKind",
    "ParsedHelp",
    "Positional",
    "ProbeError",
    "ProbeTimeoutError",
    "SectionParser",
    "merge",
    "parse_help",
    "run",
]
