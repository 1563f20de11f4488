"""
Aggregator - merges per-tool summaries of one component revision.

Each field takes its value from the first tool in precedence order that supplies
a non-empty value. Files are unioned by path and each file attribute follows the
same rule. Tools missing from the precedence list never win a conflict; they can
only fill file attributes no ranked tool supplied.
"""

import copy
import logging
from typing import Any, Dict, List, Optional


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _fill(result: Dict[str, Any], source: Dict[str, Any]) -> bool:
    """Copy values from ``source`` into the gaps of ``result``. Returns True if anything was taken."""
    took = False
    for key, value in source.items():
        if key == "files" or _is_empty(value):
            continue
        current = result.get(key)
        if _is_empty(current):
            result[key] = copy.deepcopy(value)
            took = True
        elif isinstance(current, dict) and isinstance(value, dict):
            took = _fill(current, value) or took
    return took


class AggregationService:
    """
    Precedence-ordered merge of tool summaries.

    Args:
        precedence: Tool names, highest precedence first
        logger: Injected logger
    """

    def __init__(self, precedence: List[str], logger: Optional[logging.Logger] = None):
        self.precedence = list(precedence)
        self.logger = logger or logging.getLogger(__name__)

    def process(self, summaries: Dict[str, Optional[Dict[str, Any]]]) -> Dict[str, Any]:
        """
        Merge the summaries of one revision.

        Args:
            summaries: Tool name -> summary fragment

        Returns:
            The merged fragment, with ``described.tools`` naming the contributing tools
        """
        ranked = [tool for tool in self.precedence if summaries.get(tool)]
        unranked = [tool for tool in summaries if tool not in self.precedence and summaries.get(tool)]
        if unranked:
            self.logger.debug("Tools outside precedence only fill file gaps", extra={"tools": unranked})

        result: Dict[str, Any] = {}
        contributors: List[str] = []
        for tool in ranked:
            if _fill(result, summaries[tool]):
                contributors.append(tool)

        files: Dict[str, Dict[str, Any]] = {}
        for tool in ranked + unranked:
            took = False
            for file in summaries[tool].get("files") or []:
                path = file.get("path")
                if not path:
                    continue
                entry = files.setdefault(path, {"path": path})
                took = _fill(entry, file) or took
            if took and tool not in contributors:
                contributors.append(tool)
        if files:
            result["files"] = list(files.values())

        described = result.setdefault("described", {})
        described["tools"] = contributors
        return result
