from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TelemetryRecord(BaseModel):
    """One sensor reading.

    Python attributes are snake_case; the stored and serialized document
    keeps the platform's wire names (``deviceId``, ``hum``, ``temp``,
    ``createdAt``, ``_id``). ``time`` and ``created_at`` are always
    overwritten by the storage gateway at write time.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, alias="_id")
    device_id: str = Field(alias="deviceId", min_length=1)
    # orientation (qw carries the battery level)
    qx: float | None = None
    qy: float | None = None
    qz: float | None = None
    qw: float | None = None
    # rates of change of orientation
    ex: float | None = None
    ey: float | None = None
    ez: float | None = None
    humidity: float | None = Field(default=None, alias="hum")
    temperature: float | None = Field(default=None, alias="temp")
    time: int | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class TrendBucket(BaseModel):
    time: int
    subtotal: int
