"""
Contribution Lifecycle - routes validated pull request events to the engine.

    opened / synchronize -> fetch curations -> validate -> update_contribution(pr, curations, state=open)
    closed               -> update_contribution(pr, state=merged|closed)   (merge path when merged)

Other actions are ignored.
"""

import logging
from typing import Optional

from clearcurate.engine.contribution import CurationContributionEngine
from clearcurate.errors import InvalidTransitionError
from clearcurate.models.contribution import Contribution, ContributionState, PullRequestEvent, can_transition

VALIDATING_ACTIONS = ("opened", "synchronize")
CLOSING_ACTIONS = ("closed",)


class ContributionLifecycle:
    """Lifecycle event handler."""

    def __init__(self, engine: CurationContributionEngine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    async def handle(self, event: PullRequestEvent) -> Optional[Contribution]:
        """
        Handle one pull request event.

        Args:
            event: The validated event

        Returns:
            The updated Contribution, or None when the event was ignored

        Raises:
            InvalidTransitionError: If the contribution already reached a terminal state
        """
        pr = event.pull_request
        if event.action not in VALIDATING_ACTIONS + CLOSING_ACTIONS:
            self.logger.info("Ignoring pull request event", extra={"action": event.action, "number": pr.number})
            return None

        existing = await self.engine.store.get_contribution(pr.number)
        if existing is not None and existing.state.is_terminal:
            target = ContributionState.MERGED if pr.is_merged else ContributionState.CLOSED
            if event.action in VALIDATING_ACTIONS or not can_transition(existing.state, target):
                raise InvalidTransitionError(
                    f"Contribution #{pr.number} is {existing.state.value}, cannot handle '{event.action}'"
                )

        if event.action in VALIDATING_ACTIONS:
            curations = await self.engine.get_contributed_curations(pr.number, pr.head.sha)
            status = await self.engine.validate_contributions(pr.number, pr.head.sha, curations)
            return await self.engine.update_contribution(pr, curations, status, ContributionState.OPEN)

        state = ContributionState.MERGED if pr.is_merged else ContributionState.CLOSED
        self.logger.info("Contribution closed", extra={"number": pr.number, "merged": pr.is_merged})
        return await self.engine.update_contribution(pr, state=state)
