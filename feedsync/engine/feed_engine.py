"""
Social graph & feed engine.

Owns the read-modify-write protocols for posts, comments, reactions and follow
edges, and the live feed/comment subscriptions that join each item with its
author's current profile. Holds no durable state: every mutation re-reads the
authoritative document inside a store transaction before writing.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..errors import NotAuthorized, NotFound, SelfFollowRejected, ValidationError
from ..models import CommentView, FollowStats, PostView, UserProfile
from ..services.document_store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    ErrorHandler,
    Query,
    Subscription,
    increment,
)
from . import reactions
from .projection import comment_from_snapshot, post_from_snapshot, profile_from_snapshot
from .reactions import Reaction, ReactionKind

logger = logging.getLogger(__name__)

USERS = "users"
POSTS = "posts"
COMMENTS = "comments"
FOLLOWERS = "followers"

DEFAULT_PAGE_SIZE = 20

# Marks an optional update_profile field the caller did not supply.
UNCHANGED = object()

Handler = Callable[[Any], Union[None, Awaitable[None]]]


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def post_path(post_id: str) -> str:
    return f"{POSTS}/{post_id}"


def comments_collection(post_id: str) -> str:
    return f"{POSTS}/{post_id}/{COMMENTS}"


def follow_edge_id(follower_id: str, following_id: str) -> str:
    """Composite key: at most one edge per ordered (follower, following) pair."""
    return f"{follower_id}_{following_id}"


def follow_edge_path(follower_id: str, following_id: str) -> str:
    return f"{FOLLOWERS}/{follow_edge_id(follower_id, following_id)}"


def _require_text(text: Optional[str], what: str) -> str:
    stripped = (text or "").strip()
    if not stripped:
        raise ValidationError(f"{what} cannot be empty")
    return stripped


def _require_id(value: Optional[str], what: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{what} is required")
    return value.strip()


class _JoinedStream:
    """
    Bridges one store subscription to a caller handler.

    Each snapshot is joined in its own task; joins may overlap, but a task only
    delivers after the previous snapshot's task has finished, so the handler sees
    snapshots in store order.
    """

    def __init__(
        self,
        join: Callable[[List[DocumentSnapshot]], Awaitable[List[Any]]],
        handler: Handler,
        on_error: Optional[ErrorHandler],
        name: str,
    ):
        self._join = join
        self._handler = handler
        self._on_error = on_error
        self._name = name
        self._tail: Optional[asyncio.Task] = None
        self._pending: set = set()
        self.subscription = Subscription(self._cancel_pending)

    def on_snapshot(self, docs: List[DocumentSnapshot]) -> None:
        if not self.subscription.active:
            return
        task = asyncio.get_running_loop().create_task(self._process(docs, self._tail))
        self._tail = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _process(self, docs: List[DocumentSnapshot], previous: Optional[asyncio.Task]) -> None:
        items: Optional[List[Any]] = None
        error: Optional[BaseException] = None
        try:
            items = await self._join(docs)
        except Exception as e:
            error = e
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if not self.subscription.active:
            return
        if error is not None:
            self.report(error)
            return
        try:
            result = self._handler(items)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.report(e)

    def report(self, error: BaseException) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.error("[FeedEngine] %s subscription error: %s", self._name, error)

    def _cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._tail = None


class FeedEngine:
    """Feed, comment, reaction, follow and profile operations over a DocumentStore."""

    def __init__(self, store: DocumentStore, page_size: int = DEFAULT_PAGE_SIZE):
        self._store = store
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def resolve_profile(self, user_id: str) -> Optional[UserProfile]:
        """Point read of users/{user_id}. None when the user does not exist."""
        snap = await self._store.get_document(user_path(user_id))
        return profile_from_snapshot(snap) if snap is not None else None

    async def _resolve_many(self, user_ids: Iterable[str]) -> Dict[str, Optional[UserProfile]]:
        ids = [uid for uid in dict.fromkeys(user_ids) if uid]
        profiles = await asyncio.gather(*(self.resolve_profile(uid) for uid in ids))
        return dict(zip(ids, profiles))

    async def create_profile(self, user_id: str, email: Optional[str], display_name: str = "") -> UserProfile:
        """Create users/{user_id} on registration."""
        uid = _require_id(user_id, "user_id")
        await self._store.set_document(
            user_path(uid),
            {
                "email": email,
                "displayName": (display_name or "").strip(),
                "bio": "",
                "photoBase64": None,
                "fcmToken": None,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("[FeedEngine] created profile for user=%s", uid)
        return await self.resolve_profile(uid)

    async def update_profile(
        self,
        user_id: str,
        display_name: str,
        bio: Any = UNCHANGED,
        avatar: Any = UNCHANGED,
    ) -> UserProfile:
        """Fields left as UNCHANGED keep their stored value; avatar=None clears the avatar."""
        name = _require_text(display_name, "Display name")
        fields: Dict[str, Any] = {"displayName": name, "updatedAt": SERVER_TIMESTAMP}
        if bio is not UNCHANGED:
            fields["bio"] = bio or ""
        if avatar is not UNCHANGED:
            fields["photoBase64"] = avatar
        await self._store.set_document(user_path(user_id), fields, merge=True)
        return await self.resolve_profile(user_id)

    def subscribe_profile(
        self,
        user_id: str,
        handler: Handler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """Live users/{user_id}; handler receives a UserProfile or None."""

        async def _join(docs: List[DocumentSnapshot]) -> List[Optional[UserProfile]]:
            return [profile_from_snapshot(d) if d is not None else None for d in docs]

        stream = _JoinedStream(_join, lambda items: handler(items[0]), on_error, "profile")
        store_sub = self._store.subscribe_document(
            user_path(user_id), lambda snap: stream.on_snapshot([snap]), stream.report
        )
        stream.subscription.add_cancel_callback(store_sub.cancel)
        return stream.subscription

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    def _feed_query(self, limit: Optional[int], author_id: Optional[str]) -> Query:
        if limit is not None and limit < 1:
            raise ValidationError(f"Feed limit must be positive, got {limit}")
        query = Query(POSTS).order("createdAt", descending=True).limit_to(limit or self._page_size)
        if author_id:
            query = query.where("userId", author_id)
        return query

    async def _join_posts(self, docs: List[DocumentSnapshot]) -> List[PostView]:
        authors = await self._resolve_many(d.get("userId") for d in docs)
        return [post_from_snapshot(d, authors.get(d.get("userId"))) for d in docs]

    def subscribe_feed(
        self,
        handler: Handler,
        limit: Optional[int] = None,
        author_id: Optional[str] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """
        Live feed, newest first, bounded to `limit` posts, optionally one author's.
        On every snapshot the handler receives the full list of PostView, each joined
        with its author's current profile (one point read per distinct author).
        """
        return self._subscribe_joined(
            self._feed_query(limit, author_id), self._join_posts, handler, on_error, "feed"
        )

    async def list_feed(self, limit: Optional[int] = None, author_id: Optional[str] = None) -> List[PostView]:
        docs = await self._store.query(self._feed_query(limit, author_id))
        return await self._join_posts(docs)

    async def get_post(self, post_id: str) -> PostView:
        snap = await self._store.get_document(post_path(post_id))
        if snap is None:
            raise NotFound(post_path(post_id))
        return (await self._join_posts([snap]))[0]

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _comments_query(self, post_id: str) -> Query:
        return Query(comments_collection(post_id)).order("createdAt")

    def _comment_joiner(self, post_id: str):
        async def _join(docs: List[DocumentSnapshot]) -> List[CommentView]:
            authors = await self._resolve_many(d.get("userId") for d in docs)
            return [comment_from_snapshot(d, post_id, authors.get(d.get("userId"))) for d in docs]

        return _join

    def subscribe_comments(
        self,
        post_id: str,
        handler: Handler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """Live comments of one post, oldest first, joined with each comment author's profile."""
        return self._subscribe_joined(
            self._comments_query(post_id), self._comment_joiner(post_id), handler, on_error, "comments"
        )

    async def list_comments(self, post_id: str) -> List[CommentView]:
        docs = await self._store.query(self._comments_query(post_id))
        return await self._comment_joiner(post_id)(docs)

    def _subscribe_joined(self, query: Query, join, handler: Handler, on_error, name: str) -> Subscription:
        stream = _JoinedStream(join, handler, on_error, name)
        store_sub = self._store.subscribe(query, stream.on_snapshot, stream.report)
        stream.subscription.add_cancel_callback(store_sub.cancel)
        return stream.subscription

    # ------------------------------------------------------------------
    # Post mutations
    # ------------------------------------------------------------------

    async def create_post(self, author_id: str, text: str, image: Optional[str] = None) -> str:
        """Create a post with empty reactions and zero counts. Returns the new post id."""
        body = _require_text(text, "Post text")
        author_id = _require_id(author_id, "author_id")
        author = await self.resolve_profile(author_id)
        post_id = await self._store.add_document(
            POSTS,
            {
                "userId": author_id,
                "text": body,
                "imageBase64": image,
                "userDisplayName": author.display_name if author else None,
                "userPhotoUrl": author.avatar if author else None,
                "likes": [],
                "likesCount": 0,
                "dislikes": [],
                "dislikesCount": 0,
                "commentsCount": 0,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("[FeedEngine] created post=%s author=%s", post_id, author_id)
        return post_id

    async def edit_post(self, post_id: str, author_id: str, new_text: str) -> None:
        """Update text and updatedAt. Authorship is checked against the stored post."""
        body = _require_text(new_text, "Post text")
        path = post_path(post_id)

        async def _edit(txn) -> None:
            snap = await txn.get(path)
            if snap is None:
                raise NotFound(path)
            if snap.get("userId") != author_id:
                raise NotAuthorized(f"User {author_id} is not the author of post {post_id}")
            txn.update(path, {"text": body, "updatedAt": SERVER_TIMESTAMP})

        await self._store.run_transaction(_edit)

    async def delete_post(self, post_id: str, requester_id: str) -> None:
        """Delete the post document. Its comments are left in place."""
        path = post_path(post_id)

        async def _delete(txn) -> None:
            snap = await txn.get(path)
            if snap is None:
                raise NotFound(path)
            if snap.get("userId") != requester_id:
                raise NotAuthorized(f"User {requester_id} is not the author of post {post_id}")
            txn.delete(path)

        await self._store.run_transaction(_delete)
        logger.info("[FeedEngine] deleted post=%s", post_id)

    async def add_comment(self, post_id: str, author_id: str, text: str) -> str:
        """Insert a comment and bump the post's commentsCount in one transaction."""
        body = _require_text(text, "Comment text")
        author_id = _require_id(author_id, "author_id")
        path = post_path(post_id)
        collection = comments_collection(post_id)
        comment_id = self._store.new_document_id(collection)
        author = await self.resolve_profile(author_id)

        async def _add(txn) -> None:
            if await txn.get(path) is None:
                raise NotFound(path)
            txn.create(
                f"{collection}/{comment_id}",
                {
                    "userId": author_id,
                    "text": body,
                    "userDisplayName": author.display_name if author else None,
                    "userPhotoUrl": author.avatar if author else None,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            txn.update(path, {"commentsCount": increment(1)})

        await self._store.run_transaction(_add)
        logger.debug("[FeedEngine] comment=%s on post=%s by %s", comment_id, post_id, author_id)
        return comment_id

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    async def _toggle_reaction(self, post_id: str, user_id: str, kind: ReactionKind) -> Reaction:
        user_id = _require_id(user_id, "user_id")
        path = post_path(post_id)

        async def _toggle(txn) -> Reaction:
            snap = await txn.get(path)
            if snap is None:
                raise NotFound(path)
            reaction, delta = reactions.toggle(
                kind, snap.get("likes") or [], snap.get("dislikes") or [], user_id
            )
            txn.update(path, delta)
            return reaction

        reaction = await self._store.run_transaction(_toggle)
        logger.debug("[FeedEngine] %s post=%s user=%s -> %s", kind.value, post_id, user_id, reaction.value)
        return reaction

    async def toggle_like(self, post_id: str, user_id: str) -> Reaction:
        return await self._toggle_reaction(post_id, user_id, ReactionKind.LIKE)

    async def toggle_dislike(self, post_id: str, user_id: str) -> Reaction:
        return await self._toggle_reaction(post_id, user_id, ReactionKind.DISLIKE)

    # ------------------------------------------------------------------
    # Follow graph
    # ------------------------------------------------------------------

    async def toggle_follow(self, follower_id: str, following_id: str) -> bool:
        """Create or remove the follower->following edge. Returns True if now following."""
        follower_id = _require_id(follower_id, "follower_id")
        following_id = _require_id(following_id, "following_id")
        if follower_id == following_id:
            raise SelfFollowRejected(f"User {follower_id} cannot follow themselves")
        path = follow_edge_path(follower_id, following_id)

        async def _toggle(txn) -> bool:
            if await txn.get(path) is not None:
                txn.delete(path)
                return False
            txn.create(
                path,
                {
                    "followerId": follower_id,
                    "followingId": following_id,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            return True

        following = await self._store.run_transaction(_toggle)
        logger.debug("[FeedEngine] follow %s -> %s: %s", follower_id, following_id, following)
        return following

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        snap = await self._store.get_document(follow_edge_path(follower_id, following_id))
        return snap is not None

    async def follow_stats(self, user_id: str) -> FollowStats:
        """Counts are computed from the edge set on every call, never stored."""
        followers, following = await asyncio.gather(
            self._store.count(Query(FOLLOWERS).where("followingId", user_id)),
            self._store.count(Query(FOLLOWERS).where("followerId", user_id)),
        )
        return FollowStats(user_id=user_id, followers=followers, following=following)
