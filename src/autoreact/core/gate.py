from __future__ import annotations

import logging
from typing import Sequence

from ..browser.probe import ElementProbe
from ..types import ReactionState

logger = logging.getLogger(__name__)


class ReactionGate:
    """Decides whether the current item should be reacted to.

    Both checks are single reads of the page. A remove-reaction control only has
    to be present, not clickable, to count as an earlier reaction.
    """

    def __init__(
        self,
        probe: ElementProbe,
        remove_reaction_selectors: Sequence[str],
        container_selector: str,
        child_tag: str = "div",
        min_children: int = 2,
    ) -> None:
        self._probe = probe
        self._remove_reaction_selector = ", ".join(remove_reaction_selectors)
        self._container_selector = container_selector
        self._child_tag = child_tag
        self._min_children = min_children

    async def already_reacted(self) -> bool:
        # One selector group, so every reaction kind is read in the same query.
        present = await self._probe.is_present(self._remove_reaction_selector)
        if present:
            logger.debug("Remove-reaction control present")
        return present

    async def is_eligible(self) -> bool:
        count = await self._probe.count_children(self._container_selector, self._child_tag)
        if count is None:
            logger.debug("Reaction container not found")
            return False
        eligible = count >= self._min_children
        logger.debug(
            "Reaction container found, %d %s children, reactable: %s",
            count,
            self._child_tag,
            eligible,
        )
        return eligible

    async def evaluate(self) -> ReactionState:
        if await self.already_reacted():
            return ReactionState(already_reacted=True)
        return ReactionState(already_reacted=False, eligible=await self.is_eligible())
