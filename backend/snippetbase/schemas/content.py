"""Request/response contracts for snippets, playbooks and branch merges."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

BranchType = Literal["draft", "suggestion", "published"]


class ContentCreateBase(BaseModel):
    collection_id: int
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    major_change_description: Optional[Any] = None
    branch_type: BranchType = "published"


class ContentUpdateBase(BaseModel):
    collection_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    keywords: Optional[List[str]] = None
    major_change_description: Optional[Any] = None
    branch_type: Optional[BranchType] = None


class SnippetCreate(ContentCreateBase):
    configuration: Dict[str, Any] = Field(default_factory=dict)


class SnippetUpdate(ContentUpdateBase):
    configuration: Optional[Dict[str, Any]] = None


class PlaybookCreate(ContentCreateBase):
    icon: Optional[str] = None
    contents: List[Dict[str, Any]] = Field(default_factory=list)


class PlaybookUpdate(ContentUpdateBase):
    icon: Optional[str] = None
    contents: Optional[List[Dict[str, Any]]] = None


class RevisionOut(BaseModel):
    id: int
    static_id: str
    branch_id: Optional[str] = None
    branch_type: str
    is_latest: bool
    is_archived: bool
    archive_reason: Optional[str] = None
    archived_at: Optional[datetime] = None
    previous_version_id: Optional[int] = None
    branched_from_id: Optional[int] = None
    merged_from_id: Optional[int] = None
    merged_to_id: Optional[int] = None
    collection_id: int
    created_by_user_id: int
    suggested_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    name: str
    description: str
    keywords: List[str] = Field(default_factory=list)
    major_change_description: Optional[Any] = None

    model_config = {"from_attributes": True}


class SnippetOut(RevisionOut):
    kind: Literal["snippet"] = "snippet"
    configuration: Dict[str, Any] = Field(default_factory=dict)


class PlaybookOut(RevisionOut):
    kind: Literal["playbook"] = "playbook"
    icon: Optional[str] = None
    contents: List[Dict[str, Any]] = Field(default_factory=list)


class ArchiveRequest(BaseModel):
    reason: Optional[Literal["approved", "rejected"]] = None


class MergeRequest(BaseModel):
    resolution: Literal["accept", "reject"] = "accept"
    target_id: Optional[int] = None
    collection_id: Optional[int] = None
    major_change_description: Optional[Any] = None


class ContainedObjectOut(BaseModel):
    static_id: str
    kind: str


class SubscriptionUpdate(BaseModel):
    subscribed: bool


class SubscriptionOut(BaseModel):
    static_id: str
    subscribed: bool
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
