from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class RoomScoped(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: Optional[str] = Field(default=None, alias="roomId")


# client -> server

class FindPartner(BaseModel):
    pass

class ChatMessageIn(RoomScoped):
    text: str = ""

class OfferIn(RoomScoped):
    offer: Any = None

class AnswerIn(RoomScoped):
    answer: Any = None

class IceCandidateIn(RoomScoped):
    candidate: Any = None

class LeaveChat(BaseModel):
    pass

class RequestUserCount(BaseModel):
    pass


# Every event a client may send, keyed by its wire name
CLIENT_EVENTS = {
    "find_partner": FindPartner,
    "message": ChatMessageIn,
    "webrtc_offer": OfferIn,
    "webrtc_answer": AnswerIn,
    "webrtc_ice_candidate": IceCandidateIn,
    "leave_chat": LeaveChat,
    "request_user_count": RequestUserCount,
}


class ClientFrame(BaseModel):
    event: str
    data: Optional[Any] = None

    def payload(self) -> BaseModel:
        """Validate ``data`` against the model registered for ``event``.

        Raises KeyError for unknown events and pydantic.ValidationError for a bad payload.
        """
        model = CLIENT_EVENTS[self.event]
        return model.model_validate(self.data if isinstance(self.data, dict) else {})


# server -> client

class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender: str
    text: str
    time: str

class WaitingOut(BaseModel):
    message: str

class MatchFoundOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")
    initiator: bool


class StatsResponse(BaseModel):
    online_users_count: int
    waiting_count: int
    paired_count: int
    active_rooms: int
