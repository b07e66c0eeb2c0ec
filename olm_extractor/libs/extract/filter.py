"""
Resource Filter

Include/exclude selection of resource objects using jq expressions.
Exclusions always win; with no inclusions every non-excluded object is
kept; otherwise an object is kept only if an inclusion yields a literal
boolean true.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import jq

from ..core.constants import ErrorMessages
from ..core.exceptions import FilterError
from ..core.protocols import ObjectPredicate

logger = logging.getLogger(__name__)

Expression = Union[str, ObjectPredicate]


def compile_expression(expression: Expression, error_template: str) -> ObjectPredicate:
    """
    Compile a jq expression into a predicate

    Callables are returned unchanged.

    Args:
        expression: jq expression or callable
        error_template: Error message template used when compilation fails

    Returns:
        Predicate returning the first value the expression produces

    Raises:
        FilterError: If the expression does not compile
    """
    if callable(expression):
        return expression

    try:
        program = jq.compile(expression)
    except ValueError as e:
        raise FilterError(error_template.format(expression=expression, error=e)) from e

    def predicate(obj: Dict[str, Any]) -> Any:
        return program.input_value(obj).first()

    return predicate


class ResourceFilter:
    """Keeps or drops resource objects according to include/exclude expressions"""

    def __init__(self, include: Optional[Sequence[Expression]] = None,
                 exclude: Optional[Sequence[Expression]] = None):
        """
        Initialize the filter

        Args:
            include: Expressions selecting objects to keep
            exclude: Expressions selecting objects to drop

        Raises:
            FilterError: If any expression is invalid
        """
        self.include = [
            compile_expression(e, str(ErrorMessages.FilterError.INVALID_INCLUDE)) for e in include or []
        ]
        self.exclude = [
            compile_expression(e, str(ErrorMessages.FilterError.INVALID_EXCLUDE)) for e in exclude or []
        ]

    @staticmethod
    def _matches(predicate: Callable[[Dict[str, Any]], Any], obj: Dict[str, Any]) -> bool:
        try:
            return predicate(obj) is True
        except (ValueError, TypeError, KeyError, StopIteration) as e:
            # Evaluation errors mean "no match" for this object
            logger.debug(f"Filter expression failed on {obj.get('kind')}/"
                         f"{(obj.get('metadata') or {}).get('name')}: {e}")
            return False

    def matches(self, obj: Dict[str, Any]) -> bool:
        """
        Decide whether an object is kept

        Args:
            obj: Resource object

        Returns:
            bool: True if the object passes the filter
        """
        if any(self._matches(predicate, obj) for predicate in self.exclude):
            return False

        if not self.include:
            return True

        return any(self._matches(predicate, obj) for predicate in self.include)

    def apply(self, objects: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Return the objects that pass the filter, in order"""
        objects = list(objects)
        kept = [obj for obj in objects if self.matches(obj)]
        logger.info(f"Filter kept {len(kept)} of {len(objects)} objects")
        return kept
