from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    room_id: str

class JoinRoomResponse(BaseModel):
    room_id: str
    token: str

class TtlResponse(BaseModel):
    ttl: int
