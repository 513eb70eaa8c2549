from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- User ---

class UserBase(BaseModel):
    username: str = Field(max_length=50)
    email: str = Field(max_length=255)


class UserCreate(UserBase):
    pass


class UserResponse(UserBase):
    id: int
    role: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    admins: int
    visitors: int


class PromoteUserRequest(BaseModel):
    user_id: int | None = None
    email: str | None = None

    @model_validator(mode="after")
    def _require_identifier(self):
        if self.user_id is None and not self.email:
            raise ValueError("user_id or email is required")
        return self


class DeleteUserRequest(BaseModel):
    confirm_action: bool = False


# Typed by the account owner to confirm self-service deletion.
ACCOUNT_DELETION_PHRASE = "DELETE MY ACCOUNT"


class DeleteAccountRequest(BaseModel):
    confirm_text: str = ""


# --- Article / Review ---

class ArticleCreate(BaseModel):
    title: str = Field(max_length=200)
    excerpt: str | None = Field(None, max_length=500)
    content: str | None = None


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, max_length=200)
    excerpt: str | None = Field(None, max_length=500)
    content: str | None = None


class ArticleResponse(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: str | None
    content: str | None = None
    like_count: int
    author_id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ReviewCreate(ArticleCreate):
    rating: int | None = Field(None, ge=0, le=10)
    game_title: str | None = Field(None, max_length=200)
    platform: str | None = Field(None, max_length=100)
    genre: str | None = Field(None, max_length=100)


class ReviewUpdate(ArticleUpdate):
    rating: int | None = Field(None, ge=0, le=10)
    game_title: str | None = Field(None, max_length=200)
    platform: str | None = Field(None, max_length=100)
    genre: str | None = Field(None, max_length=100)


class ReviewResponse(ArticleResponse):
    rating: int | None
    game_title: str | None
    platform: str | None
    genre: str | None


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    article_id: int | None = None
    review_id: int | None = None
    parent_id: int | None = None

    @model_validator(mode="after")
    def _single_target(self):
        if (self.article_id is None) == (self.review_id is None):
            raise ValueError("exactly one of article_id or review_id is required")
        return self


class CommentResponse(BaseModel):
    id: int
    content: str
    author_id: int | None
    article_id: int | None
    review_id: int | None
    parent_id: int | None
    is_deleted: bool
    like_count: int
    created_at: datetime
    is_liked: bool = False
    can_delete: bool = False
    model_config = ConfigDict(from_attributes=True)


class CommentDeletionResult(BaseModel):
    deleted: bool = True
    hard_deleted: bool
    likes_removed: int
    # Soft-deleted ancestors removed because this deletion left them reply-less.
    collapsed_ids: list[int] = []


# --- Likes ---

class ToggleResult(BaseModel):
    liked: bool
    like_count: int


class LikeStatus(BaseModel):
    liked: bool
    like_count: int


class LikeEntry(BaseModel):
    id: int
    user: UserSummary | None
    liked_at: datetime


class ContentLikesResponse(BaseModel):
    content_type: str
    content_id: int
    like_count: int
    likes: list[LikeEntry]


class RankedContent(BaseModel):
    id: int
    title: str
    like_count: int
    author: str | None = None


class TopLiker(BaseModel):
    user_id: int
    username: str
    email: str
    likes_count: int


class LikeStatsResponse(BaseModel):
    total_likes: int
    total_article_likes: int
    total_review_likes: int
    total_comment_likes: int
    top_articles: list[RankedContent]
    top_reviews: list[RankedContent]
    top_comments: list[RankedContent]
    top_likers: list[TopLiker]


# --- Consistency ---

class Divergence(BaseModel):
    id: int
    content_type: str
    real: int
    stored: int
    delta: int


class LikeRef(BaseModel):
    id: int
    user_id: int
    content_type: str
    content_id: int
    liked_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class Irreconcilable(BaseModel):
    id: int
    content_type: str
    reason: str


class TypeTotals(BaseModel):
    articles: int = 0
    reviews: int = 0
    comments: int = 0
    total: int = 0


class AuditSummary(BaseModel):
    is_consistent: bool
    needs_sync: bool
    has_orphans: bool
    total_divergent: int


class AuditReport(BaseModel):
    real_counts: TypeTotals
    stored_counts: TypeTotals
    divergences: list[Divergence]
    orphaned_likes: list[LikeRef]
    dangling_likes: list[LikeRef]
    irreconcilable: list[Irreconcilable]
    summary: AuditSummary


class ResyncReport(BaseModel):
    articles_fixed: int = 0
    reviews_fixed: int = 0
    comments_fixed: int = 0
    total: int = 0
    # Rows whose counter moved between read and conditional write.
    skipped: int = 0


class OrphanCleanupReport(BaseModel):
    cleaned: int
    details: list[LikeRef]


# --- Cascades ---

class UserDeletionTally(BaseModel):
    likes_removed: int = 0
    articles_removed: int = 0
    reviews_removed: int = 0
    comments_hard_deleted: int = 0
    comments_soft_deleted: int = 0
    # Other users' comments removed because the article/review they sat on was deleted.
    thread_comments_removed: int = 0
    # Other users' soft-deleted placeholders that collapsed once their last reply went.
    placeholders_collapsed: int = 0


class ContentDeletionTally(BaseModel):
    likes_removed: int = 0
    comments_removed: int = 0


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    page_size: int
    pages: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_articles: int
    total_reviews: int
    total_comments: int
    total_users: int
    total_likes: int
    cache_info: dict = {}
