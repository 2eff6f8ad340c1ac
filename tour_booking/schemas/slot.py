from datetime import time

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TimeSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    label: str
    starts_at: time
    ends_at: time
    capacity: int
