"""
Per-snapshot projections: raw documents -> view models joined with the author's
current profile.

Author display data precedence: live profile, then the snapshot copied into the
document at write time, then a placeholder.
"""

from typing import Optional

from ..models import CommentView, PostView, UserProfile
from ..services.document_store import DocumentSnapshot

PLACEHOLDER_NAME = "User"


def profile_from_snapshot(snap: DocumentSnapshot) -> UserProfile:
    d = snap.data
    return UserProfile(
        user_id=snap.id,
        display_name=d.get("displayName") or "",
        email=d.get("email"),
        bio=d.get("bio") or "",
        avatar=d.get("photoBase64"),
        created_at=d.get("createdAt"),
        updated_at=d.get("updatedAt"),
    )


def _author_fields(snap: DocumentSnapshot, author: Optional[UserProfile]):
    if author is not None and author.display_name:
        return author.display_name, author.avatar
    name = snap.get("userDisplayName") or PLACEHOLDER_NAME
    avatar = author.avatar if author is not None else snap.get("userPhotoUrl")
    return name, avatar


def post_from_snapshot(snap: DocumentSnapshot, author: Optional[UserProfile]) -> PostView:
    d = snap.data
    name, avatar = _author_fields(snap, author)
    return PostView(
        id=snap.id,
        author_id=d.get("userId") or "",
        author_name=name,
        author_avatar=avatar,
        text=d.get("text") or "",
        image=d.get("imageBase64"),
        likes=list(d.get("likes") or []),
        likes_count=d.get("likesCount") or 0,
        dislikes=list(d.get("dislikes") or []),
        dislikes_count=d.get("dislikesCount") or 0,
        comments_count=d.get("commentsCount") or 0,
        created_at=d.get("createdAt"),
        updated_at=d.get("updatedAt"),
    )


def comment_from_snapshot(
    snap: DocumentSnapshot, post_id: str, author: Optional[UserProfile]
) -> CommentView:
    d = snap.data
    name, avatar = _author_fields(snap, author)
    return CommentView(
        id=snap.id,
        post_id=post_id,
        author_id=d.get("userId") or "",
        author_name=name,
        author_avatar=avatar,
        text=d.get("text") or "",
        created_at=d.get("createdAt"),
    )
