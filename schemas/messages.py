from pydantic import BaseModel, Field
from typing import Optional
from constants import MAX_SENDER_LENGTH, MAX_TEXT_LENGTH


class Message(BaseModel):
    id: str
    sender: str
    text: str
    timestamp: str
    room_id: str
    token: Optional[str] = None  # author's capability token, only shown to its owner
    is_edited: bool = False
    edited_at: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None

class PostMessageRequest(BaseModel):
    sender: str = Field(max_length=MAX_SENDER_LENGTH)
    text: str = Field(max_length=MAX_TEXT_LENGTH)

class EditMessageRequest(BaseModel):
    text: str = Field(max_length=MAX_TEXT_LENGTH)

class MessagesResponse(BaseModel):
    messages: list[Message]

class SuccessResponse(BaseModel):
    success: bool = True
