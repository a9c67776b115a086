from pydantic import BaseModel, Field
from typing import List, Literal, Optional

# --- Schemas for nodes ---

class NodeBase(BaseModel):
    name: Optional[str] = None

class NodeRename(NodeBase):
    pass

class Node(NodeBase):
    id: str
    is_root: bool = False
    parent_id: Optional[str] = None

    class Config:
        from_attributes = True

# --- Schema for the rendered tree ---

class TreeNode(NodeBase):
    id: str
    is_root: bool = False
    children: List["TreeNode"] = []

class TreeResponse(BaseModel):
    count: int
    root: Optional[TreeNode] = None

class DeleteResult(BaseModel):
    detail: str
    deleted: List[str]

class RestartResult(BaseModel):
    detail: str
    deleted: int

# --- Schemas for pinch-zoom ---

class Size(BaseModel):
    width: float = Field(ge=0)
    height: float = Field(ge=0)

class ViewportState(BaseModel):
    scale: float = Field(default=1.0, gt=0)
    last_scale_value: float = Field(default=1.0, gt=0)

class MagnifyInput(BaseModel):
    viewport: ViewportState = ViewportState()
    phase: Literal["changed", "ended"] = "changed"
    value: float = 1.0
    size: Optional[Size] = None

class MagnifyResponse(BaseModel):
    viewport: ViewportState
    frame: Optional[Size] = None

TreeNode.model_rebuild()
