import math
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from gateway.common.exceptions import AbilityException
from gateway.services.abilities import annotations
from gateway.services.abilities.registry import READ, WRITE, Ability, AbilityContext

PostStatus = Literal["publish", "draft", "pending", "private"]


# ----- Shared -----
class Post(BaseModel):
    id: int
    title: str
    content: str = ""
    excerpt: str = ""
    status: str
    date: str = ""
    modified: str = ""
    author: int
    permalink: str = ""


def _post_not_found(post_id: int) -> AbilityException:
    return AbilityException(
        error="post_not_found",
        message=f"Post not found: {post_id}",
        status_code=404,
    )


# ----- Find -----
class FindPostsInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page: int = Field(1, ge=1, description="Page number for pagination")
    per_page: int = Field(10, ge=1, le=100, description="Number of posts per page")
    search: str = Field("", description="Search posts by title or content")
    status: Optional[PostStatus] = Field(None, description="Filter posts by status")
    order: Literal["asc", "desc"] = Field("desc", description="Order direction")
    orderby: Literal["date", "modified", "title", "id"] = Field("date", description="Sort by field")


class FindPostsOutput(BaseModel):
    posts: List[Post]
    total: int
    total_pages: int


def can_find_posts(ctx: AbilityContext, args: FindPostsInput) -> bool:
    # published content is public; any other status needs an editor-level view
    if args.status in (None, "publish"):
        return ctx.can("read")
    return ctx.can("edit_posts")


async def find_posts(ctx: AbilityContext, args: FindPostsInput) -> FindPostsOutput:
    posts, total = ctx.host.find_posts(
        search=args.search,
        status=args.status,
        order=args.order,
        orderby=args.orderby,
        page=args.page,
        per_page=args.per_page,
    )
    return FindPostsOutput(
        posts=[Post(**post) for post in posts],
        total=total,
        total_pages=max(1, math.ceil(total / args.per_page)),
    )


# ----- View -----
class ViewPostInput(BaseModel):
    id: int = Field(..., ge=1, description="The post ID to retrieve")


class ViewPostOutput(BaseModel):
    post: Post


def can_view_post(ctx: AbilityContext, args: ViewPostInput) -> bool:
    return ctx.can("read_post", args.id)


async def view_post(ctx: AbilityContext, args: ViewPostInput) -> ViewPostOutput:
    post = ctx.host.get_post(args.id)
    if post is None or post["status"] == "trash":
        raise _post_not_found(args.id)
    return ViewPostOutput(post=Post(**post))


# ----- Create -----
class CreatePostInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, description="The post title")
    content: str = Field("", description="The post content (HTML allowed)")
    status: PostStatus = Field("draft", description="Post status")
    excerpt: str = Field("", description="Optional post excerpt")


def can_create_post(ctx: AbilityContext, args: CreatePostInput) -> bool:
    if not ctx.can("edit_posts"):
        return False
    if args.status in ("publish", "private"):
        return ctx.can("publish_posts")
    return True


async def create_post(ctx: AbilityContext, args: CreatePostInput) -> Post:
    post = ctx.host.create_post(ctx.owner.id, **args.model_dump())
    return Post(**post)


# ----- Update -----
class UpdatePostInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., ge=1, description="The post ID to update")
    title: Optional[str] = Field(None, min_length=1, description="The post title")
    content: Optional[str] = Field(None, description="The post content (HTML allowed)")
    status: Optional[PostStatus] = Field(None, description="Post status")
    excerpt: Optional[str] = Field(None, description="Optional post excerpt")


def can_update_post(ctx: AbilityContext, args: UpdatePostInput) -> bool:
    if not ctx.can("edit_post", args.id):
        return False
    if args.status in ("publish", "private"):
        return ctx.can("publish_posts")
    return True


async def update_post(ctx: AbilityContext, args: UpdatePostInput) -> Post:
    existing = ctx.host.get_post(args.id)
    if existing is None or existing["status"] == "trash":
        raise _post_not_found(args.id)

    post = ctx.host.update_post(args.id, **args.model_dump(exclude={"id"}, exclude_none=True))
    return Post(**post)


# ----- Delete -----
class DeletePostInput(BaseModel):
    id: int = Field(..., ge=1, description="The post ID to delete")
    force: bool = Field(False, description="Whether to bypass trash and force deletion")


class DeletePostOutput(BaseModel):
    id: int
    deleted: bool
    status: str


def can_delete_post(ctx: AbilityContext, args: DeletePostInput) -> bool:
    return ctx.can("delete_post", args.id)


async def delete_post(ctx: AbilityContext, args: DeletePostInput) -> DeletePostOutput:
    post = ctx.host.delete_post(args.id, force=args.force)
    if post is None:
        raise _post_not_found(args.id)
    return DeletePostOutput(
        id=args.id,
        deleted=True,
        status="deleted" if args.force else post["status"],
    )


ABILITIES = [
    Ability(
        name="core/posts-find",
        label="Find Posts",
        description="Find and search posts with optional filtering and pagination.",
        input_model=FindPostsInput,
        output_model=FindPostsOutput,
        permission=can_find_posts,
        handler=find_posts,
        classification=READ,
        group="posts",
        annotations=annotations.read(),
    ),
    Ability(
        name="core/posts-view",
        label="View Post",
        description="Retrieve a single post by ID.",
        input_model=ViewPostInput,
        output_model=ViewPostOutput,
        permission=can_view_post,
        handler=view_post,
        classification=READ,
        group="posts",
        annotations=annotations.read(),
    ),
    Ability(
        name="core/posts-create",
        label="Create Post",
        description="Create a new post. Publishing requires the publish_posts capability.",
        input_model=CreatePostInput,
        output_model=Post,
        permission=can_create_post,
        handler=create_post,
        classification=WRITE,
        group="posts",
        annotations=annotations.create(),
    ),
    Ability(
        name="core/posts-update",
        label="Update Post",
        description="Update the title, content, excerpt or status of an existing post.",
        input_model=UpdatePostInput,
        output_model=Post,
        permission=can_update_post,
        handler=update_post,
        classification=WRITE,
        group="posts",
        annotations=annotations.update(),
    ),
    Ability(
        name="core/posts-delete",
        label="Delete Post",
        description="Move a post to the trash, or delete it permanently with force.",
        input_model=DeletePostInput,
        output_model=DeletePostOutput,
        permission=can_delete_post,
        handler=delete_post,
        classification=WRITE,
        group="posts",
        annotations=annotations.delete(),
    ),
]
