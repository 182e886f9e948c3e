"""
Reaction State Machine Tests

Pure transition function: (kind, likes, dislikes, user) -> (reaction, delta).

Run:
----
    pytest tests/test_reactions.py -v
"""

from feedsync.engine.reactions import Reaction, ReactionKind, current_reaction, toggle
from feedsync.services.document_store import array_remove, array_union, increment


class TestCurrentReaction:
    def test_neutral(self):
        assert current_reaction([], [], "u1") == Reaction.NEUTRAL

    def test_liked(self):
        assert current_reaction(["u1"], [], "u1") == Reaction.LIKED

    def test_disliked(self):
        assert current_reaction(["u2"], ["u1"], "u1") == Reaction.DISLIKED


class TestToggle:
    def test_like_from_neutral(self):
        reaction, delta = toggle(ReactionKind.LIKE, [], [], "u1")
        assert reaction == Reaction.LIKED
        assert delta == {"likes": array_union("u1"), "likesCount": increment(1)}

    def test_like_again_returns_to_neutral(self):
        reaction, delta = toggle(ReactionKind.LIKE, ["u1"], [], "u1")
        assert reaction == Reaction.NEUTRAL
        assert delta == {"likes": array_remove("u1"), "likesCount": increment(-1)}

    def test_like_while_disliked_clears_dislike(self):
        reaction, delta = toggle(ReactionKind.LIKE, [], ["u1"], "u1")
        assert reaction == Reaction.LIKED
        assert delta == {
            "likes": array_union("u1"),
            "likesCount": increment(1),
            "dislikes": array_remove("u1"),
            "dislikesCount": increment(-1),
        }

    def test_dislike_while_liked_clears_like(self):
        reaction, delta = toggle(ReactionKind.DISLIKE, ["u1", "u2"], [], "u1")
        assert reaction == Reaction.DISLIKED
        assert delta["likes"] == array_remove("u1")
        assert delta["likesCount"] == increment(-1)
        assert delta["dislikes"] == array_union("u1")

    def test_other_users_do_not_affect_transition(self):
        reaction, delta = toggle(ReactionKind.DISLIKE, ["u2"], ["u3"], "u1")
        assert reaction == Reaction.DISLIKED
        assert set(delta) == {"dislikes", "dislikesCount"}
