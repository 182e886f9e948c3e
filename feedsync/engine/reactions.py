"""
Like/dislike state machine for one (post, user) pair.

NEUTRAL -> LIKED -> NEUTRAL, NEUTRAL -> DISLIKED -> NEUTRAL. Liking while disliked
(or the reverse) clears the opposite reaction in the same delta, so a user id is
never in both sets.
"""

from enum import Enum
from typing import Any, Dict, Iterable, Tuple

from ..services.document_store import array_remove, array_union, increment

LIKES = "likes"
LIKES_COUNT = "likesCount"
DISLIKES = "dislikes"
DISLIKES_COUNT = "dislikesCount"


class Reaction(str, Enum):
    NEUTRAL = "neutral"
    LIKED = "liked"
    DISLIKED = "disliked"


class ReactionKind(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


# (set field, count field, reaction reached by adding) for each kind
_SIDES = {
    ReactionKind.LIKE: (LIKES, LIKES_COUNT, Reaction.LIKED),
    ReactionKind.DISLIKE: (DISLIKES, DISLIKES_COUNT, Reaction.DISLIKED),
}


def current_reaction(likes: Iterable[str], dislikes: Iterable[str], user_id: str) -> Reaction:
    if user_id in set(likes):
        return Reaction.LIKED
    if user_id in set(dislikes):
        return Reaction.DISLIKED
    return Reaction.NEUTRAL


def toggle(
    kind: ReactionKind,
    likes: Iterable[str],
    dislikes: Iterable[str],
    user_id: str,
) -> Tuple[Reaction, Dict[str, Any]]:
    """
    Compute the field delta for toggling `kind` for `user_id`.

    Returns (resulting reaction, update fields). The delta pairs every set change
    with the matching counter change, so applying it atomically keeps
    count == len(set) for both sides.
    """
    members = {LIKES: set(likes), DISLIKES: set(dislikes)}
    set_field, count_field, reached = _SIDES[kind]
    opposite = ReactionKind.DISLIKE if kind is ReactionKind.LIKE else ReactionKind.LIKE
    opp_set_field, opp_count_field, _ = _SIDES[opposite]

    if user_id in members[set_field]:
        return Reaction.NEUTRAL, {
            set_field: array_remove(user_id),
            count_field: increment(-1),
        }

    delta: Dict[str, Any] = {
        set_field: array_union(user_id),
        count_field: increment(1),
    }
    if user_id in members[opp_set_field]:
        delta[opp_set_field] = array_remove(user_id)
        delta[opp_count_field] = increment(-1)
    return reached, delta
