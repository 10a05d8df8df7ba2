from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Snapshot(CamelModel):
    image: Optional[str] = None
    updated_at: Optional[int] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SnapshotWriteRequest(BaseModel):
    image: StrictStr


class RoomIndexEntry(CamelModel):
    code: str
    updated_at: Optional[int] = None
    image: Optional[str] = None


class ActiveRoom(CamelModel):
    code: str
    updated_at: Optional[int] = None
    image: Optional[str] = None


class RoomListResponse(CamelModel):
    rooms: list[ActiveRoom] = []
