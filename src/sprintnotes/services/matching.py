"""Mentor/mentee matching."""

import logging
from dataclasses import dataclass, field

from sprintnotes.database.collab_repository import CollabRepository
from sprintnotes.models.collab import Match, MatchStatus, Role, User

logger = logging.getLogger(__name__)


class MatchError(Exception):
    """A matching request could not be served."""

    pass


class MatchNotFoundError(MatchError):
    """No match (or user) with the given ID."""

    pass


class MatchPermissionError(MatchError):
    """The user is not a participant of the match."""

    pass


class InvalidTransitionError(MatchError):
    """The requested status change is not allowed for this user."""

    pass


@dataclass
class Candidate:
    """A potential partner and the subjects shared with them."""

    user: User
    common_subjects: list[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        """Number of shared subjects."""
        return len(self.common_subjects)


@dataclass
class MatchView:
    """A match seen from one participant's side."""

    match: Match
    other_user: User
    is_mentor: bool


class MatchService:
    """Finds partners and drives the match status lifecycle.

    ``pending`` becomes ``accepted`` or ``rejected`` only by the participant
    who did not request it; ``accepted`` becomes ``ended`` by either one.
    """

    def __init__(self, repository: CollabRepository):
        """Initialize the service."""
        self.repository = repository

    def _get_user(self, user_id: int) -> User:
        user = self.repository.get_user(user_id)
        if user is None:
            raise MatchNotFoundError(f"User {user_id} not found")
        return user

    def find_candidates(self, user_id: int) -> list[Candidate]:
        """Opposite-role users sharing a subject, best first.

        Users already matched with the requester (in any status) are left out.
        """
        user = self._get_user(user_id)

        excluded = {user.id}
        for match in self.repository.get_matches_for_user(user_id):
            excluded.add(match.other_party(user_id))

        candidates: list[Candidate] = []
        for other in self.repository.get_users_by_role(user.role.opposite):
            if other.id in excluded:
                continue
            common = [s for s in user.subjects if s in other.subjects]
            if common:
                candidates.append(Candidate(user=other, common_subjects=common))

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates

    def request_match(self, user_id: int, target_user_id: int) -> Match:
        """Ask another user to pair up.

        Raises:
            MatchError: If both users share a role or a match already exists
        """
        user = self._get_user(user_id)
        target = self._get_user(target_user_id)
        if user.role == target.role:
            raise MatchError("Matches pair a mentor with a mentee")

        if user.role == Role.MENTOR:
            mentor_id, mentee_id = user_id, target_user_id
        else:
            mentor_id, mentee_id = target_user_id, user_id

        if self.repository.get_match_between(mentor_id, mentee_id) is not None:
            raise MatchError("Match request already exists")

        match = self.repository.add_match(
            Match(mentor_id=mentor_id, mentee_id=mentee_id, requested_by=user_id)
        )
        logger.info("User %s requested match %s with %s", user_id, match.id, target_user_id)
        return match

    def list_matches(self, user_id: int) -> list[MatchView]:
        """Every match of the user with the other participant's profile."""
        views: list[MatchView] = []
        for match in self.repository.get_matches_for_user(user_id):
            other = self.repository.get_user(match.other_party(user_id))
            if other is None:
                continue
            views.append(
                MatchView(match=match, other_user=other, is_mentor=match.mentor_id == user_id)
            )
        return views

    def get_participant_match(self, match_id: int, user_id: int) -> Match:
        """Load a match and check the user takes part in it."""
        match = self.repository.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        if not match.involves(user_id):
            raise MatchPermissionError("Unauthorized")
        return match

    def update_status(self, match_id: int, user_id: int, status: MatchStatus) -> Match:
        """Accept, reject or end a match.

        Raises:
            MatchNotFoundError: If the match does not exist
            MatchPermissionError: If the user is not a participant
            InvalidTransitionError: If the change is not allowed
        """
        status = MatchStatus(status)
        match = self.get_participant_match(match_id, user_id)

        if match.status == MatchStatus.PENDING and status in (
            MatchStatus.ACCEPTED,
            MatchStatus.REJECTED,
        ):
            if user_id == match.requested_by:
                raise InvalidTransitionError("Only the invited user can answer a match request")
        elif not (match.status == MatchStatus.ACCEPTED and status == MatchStatus.ENDED):
            raise InvalidTransitionError(
                f"Cannot change match from {match.status.value} to {status.value}"
            )

        updated = self.repository.update_match_status(match_id, status)
        if updated is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        logger.info("Match %s is now %s (by user %s)", match_id, status.value, user_id)
        return updated
