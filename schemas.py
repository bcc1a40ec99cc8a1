from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class ChatTurn(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Both optional so the handler can answer 400 with its own message.
    user_id: Optional[str] = Field(default=None, alias="userId")
    messages: Optional[List[ChatTurn]] = None


class ChatResponse(BaseModel):
    reply: str


class UploadResponse(BaseModel):
    success: bool = True
    file_name: str
    file_type: str
    file_url: str
    extracted_text: str
    ai_summary: Optional[str] = None


class MemoryEntry(BaseModel):
    role: str
    content: str
    created_at: Optional[str] = None


class ConversationOut(BaseModel):
    user_id: str
    messages: List[ChatTurn]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
