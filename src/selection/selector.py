from collections.abc import Mapping, Sequence
from typing import Protocol

from loguru import logger

from container_models import ContourCollection, ImageArray, StateStore
from exceptions import EmptySelectionError
from selection.expressions import SelectionKind, metadata_selection, parse_selection


class HasMetadata(Protocol):
    @property
    def metadata(self) -> Mapping[str, str]: ...


def select[E: HasMetadata](
    expression: str, entities: Sequence[E], *, require_nonempty: bool = False
) -> list[E]:
    """
    Resolve a selection expression against a sequence of entities.

    The result holds references to the entities themselves, in their original
    order; nothing is copied.

    :param expression: The selection expression, e.g. ``"last"`` or
        ``"Modality=CT;SeriesDescription=.*dose.*"``.
    :param entities: The entities to select from.
    :param require_nonempty: Raise when nothing is selected.
    :returns: The selected entities.
    :raises SelectorSyntaxError: If the expression is malformed.
    :raises EmptySelectionError: If ``first``/``last`` is applied to an empty
        sequence, or if nothing is selected while `require_nonempty` is set.
    """
    selection = parse_selection(expression)
    match selection.kind:
        case SelectionKind.ALL:
            selected = list(entities)
        case SelectionKind.NONE:
            selected = []
        case SelectionKind.FIRST | SelectionKind.LAST:
            if not entities:
                raise EmptySelectionError(expression)
            selected = [entities[0] if selection.kind is SelectionKind.FIRST else entities[-1]]
        case SelectionKind.INDEX | SelectionKind.RANGE:
            selected = list(entities[selection.span])
        case SelectionKind.METADATA:
            selected = [entity for entity in entities if selection.matches(entity.metadata)]

    if require_nonempty and not selected:
        raise EmptySelectionError(expression)
    logger.debug(f"Selection '{expression}' picked {len(selected)} of {len(entities)}")
    return selected


def select_image_arrays(
    store: StateStore, expression: str, *, require_nonempty: bool = False
) -> list[ImageArray]:
    return select(expression, store.image_arrays, require_nonempty=require_nonempty)


def select_contour_collections(
    store: StateStore, expression: str, *, require_nonempty: bool = False
) -> list[ContourCollection]:
    return select(
        expression, store.contour_collections, require_nonempty=require_nonempty
    )


def select_matching[E: HasMetadata](
    patterns: Mapping[str, str], entities: Sequence[E], *, require_nonempty: bool = False
) -> list[E]:
    """Select the entities whose metadata matches every ``key: pattern`` of `patterns`."""
    selection = metadata_selection(*patterns.items())
    selected = [entity for entity in entities if selection.matches(entity.metadata)]
    if require_nonempty and not selected:
        raise EmptySelectionError(selection.expression)
    logger.debug(f"Selection '{selection.expression}' picked {len(selected)} of {len(entities)}")
    return selected
